from wa_proxy.models import (
    Attachment,
    AttachmentKind,
    ConnectionPhase,
    ConnectionState,
    MessageRecord,
    MessageStatus,
)


class TestMessageRecord:
    def test_defaults(self):
        record = MessageRecord(destination="+966501234567", text="hi")
        assert record.status is MessageStatus.PENDING
        assert record.retry_count == 0
        assert len(record.id) == 32
        assert record.enqueued_at > 0

    def test_caption_only_with_attachment(self):
        plain = MessageRecord(destination="x", text="hello")
        assert plain.caption is None

        att = Attachment(AttachmentKind.DOCUMENT, "/srv/a.pdf")
        assert MessageRecord(destination="x", text="see file", attachment=att).caption == "see file"
        assert MessageRecord(destination="x", text="  ", attachment=att).caption is None

    def test_to_dict(self):
        att = Attachment(AttachmentKind.IMAGE, "/srv/a.jpg", "a.jpg")
        record = MessageRecord(destination="x", attachment=att, id="abc")
        data = record.to_dict()
        assert data["id"] == "abc"
        assert data["status"] == "pending"
        assert data["attachment"] == {"kind": "image", "path": "/srv/a.jpg", "filename": "a.jpg"}


class TestConnectionState:
    def test_ready_only_when_connected(self):
        state = ConnectionState()
        assert not state.ready
        state.phase = ConnectionPhase.AWAITING_CHALLENGE
        assert not state.ready
        state.phase = ConnectionPhase.CONNECTED
        assert state.ready

    def test_to_dict(self):
        state = ConnectionState(phase=ConnectionPhase.CONNECTED, last_activity=10.0)
        assert state.to_dict() == {
            "phase": "connected",
            "challenge": None,
            "reconnect_attempts": 0,
            "last_activity": 10.0,
            "last_close_cause": None,
            "ready": True,
        }
