"""Unit tests for advertisement fingerprinting."""

from advertisement import AddressKind
from fingerprint import canonical_fields, fingerprint


class TestFingerprint:

    def test_deterministic(self, make_adv):
        adv = make_adv(local_name="iPhone", manufacturer_data=b"\x4c\x00\x10\x05")
        assert fingerprint(adv) == fingerprint(adv)

    def test_is_128_bit_hex(self, make_adv):
        digest = fingerprint(make_adv())
        assert len(digest) == 32
        int(digest, 16)

    def test_ignores_address_and_rssi(self, make_adv):
        a = make_adv(address="11:22:33:44:55:66", rssi=-40, local_name="Pixel 7")
        b = make_adv(address="66:55:44:33:22:11", rssi=-90, local_name="Pixel 7")
        assert fingerprint(a) == fingerprint(b)

    def test_ignores_tx_power_and_source(self, make_adv):
        a = make_adv(tx_power=4, source_id="/org/bluez/hci0/dev_A")
        b = make_adv(tx_power=None, source_id="/org/bluez/hci0/dev_B")
        assert fingerprint(a) == fingerprint(b)

    def test_service_order_does_not_matter(self, make_adv):
        a = make_adv(service_uuids=["0000180f-0000-1000-8000-00805f9b34fb", "0000fe9f-0000-1000-8000-00805f9b34fb"])
        b = make_adv(service_uuids=["0000FE9F-0000-1000-8000-00805F9B34FB", "0000180f-0000-1000-8000-00805f9b34fb"])
        assert fingerprint(a) == fingerprint(b)

    def test_address_kind_changes_digest(self, make_adv):
        a = make_adv(address_kind=AddressKind.PUBLIC)
        b = make_adv(address_kind=AddressKind.RANDOM)
        assert fingerprint(a) != fingerprint(b)

    def test_connectable_changes_digest(self, make_adv):
        assert fingerprint(make_adv(connectable=True)) != fingerprint(make_adv(connectable=False))

    def test_manufacturer_data_changes_digest(self, make_adv):
        a = make_adv(manufacturer_data=b"\x4c\x00\x10\x05")
        b = make_adv(manufacturer_data=b"\x4c\x00\x10\x06")
        assert fingerprint(a) != fingerprint(b)

    def test_absent_fields_use_empty_token(self, make_adv):
        adv = make_adv()
        assert canonical_fields(adv) == "|||public|0"

    def test_canonical_layout(self, make_adv):
        adv = make_adv(
            local_name="Bob's Phone",
            manufacturer_data=b"\x4c\x00",
            service_uuids=["b", "a"],
            address_kind=AddressKind.RANDOM,
            connectable=True,
        )
        assert canonical_fields(adv) == "Bob's Phone|4c00|a,b|random|1"

    def test_sparse_devices_collide(self, make_adv):
        # weak identity: two silent devices look the same
        assert fingerprint(make_adv(address="aa:aa:aa:aa:aa:aa")) == fingerprint(make_adv(address="bb:bb:bb:bb:bb:bb"))
