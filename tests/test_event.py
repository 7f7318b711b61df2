from nip76 import NostrEvent
from nip76.config import PRIVATE_EVENT_KIND


def _event(key):
    return NostrEvent(kind=PRIVATE_EVENT_KIND, content="abc", tags=[["e", "00" * 32]], created_at=1700000000).sign(key)


def test_sign_sets_identity(master):
    event = _event(master)
    assert event.pubkey == master.nostr_pubkey
    assert len(event.id) == 64
    assert event.id == event.compute_id()
    assert len(event.sig) == 128
    assert event.verify_signature()


def test_serialize_is_compact_nip01_array(master):
    event = _event(master)
    assert event.serialize() == (
        '[0,"%s",1700000000,17761,[["e","%s"]],"abc"]' % (master.nostr_pubkey, "00" * 32)
    )


def test_tampering_breaks_verification(master):
    event = _event(master)
    event.content = "abd"
    assert not event.verify_signature()

    event = _event(master)
    event.sig = "00" * 64
    assert not event.verify_signature()


def test_dict_roundtrip(master):
    event = _event(master)
    restored = NostrEvent.from_dict(event.to_dict())
    assert restored == event
    assert restored.verify_signature()


def test_malformed_fields_fail_verification(master):
    for field, value in (("sig", None), ("pubkey", 5), ("id", None)):
        event = _event(master)
        setattr(event, field, value)
        assert not event.verify_signature()
