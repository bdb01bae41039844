"""
Tests for core Pydantic models.
"""

import pytest
from pydantic import ValidationError

from chatdesk.core.models import (
    Attachment,
    Label,
    Message,
    MessageRole,
    Session,
    SessionMode,
    SessionStatus,
    StreamOptions,
    Turn,
)


class TestSessionStatus:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("done", SessionStatus.DONE),
            ("  Needs_Review ", SessionStatus.NEEDS_REVIEW),
            ("ARCHIVE", SessionStatus.ARCHIVE),
            ("finished", None),
            ("", None),
        ],
    )
    def test_parse(self, raw, expected):
        assert SessionStatus.parse(raw) is expected


class TestSession:
    def test_defaults(self):
        session = Session()
        assert session.title == "New Session"
        assert session.status == SessionStatus.TODO
        assert session.mode == SessionMode.EXPLORE
        assert session.label_ids == []
        assert session.has_new_response is False

    def test_ids_are_unique(self):
        assert Session().id != Session().id

    def test_label_ids_deduplicated_in_order(self):
        session = Session(label_ids=["b", "a", "b"])
        assert session.label_ids == ["b", "a"]

        session.label_ids = ["x", "x"]
        assert session.label_ids == ["x"]

    def test_invalid_status_assignment(self):
        session = Session()
        with pytest.raises(ValidationError):
            session.status = "finished"

    def test_touch_advances_timestamp(self):
        session = Session()
        before = session.updated_at
        session.touch()
        assert session.updated_at >= before

    def test_json_round_trip(self):
        session = Session(title="Launch", status="done", label_ids=["l1"])
        restored = Session.model_validate_json(session.model_dump_json())
        assert restored == session


class TestLabel:
    def test_name_trimmed(self):
        assert Label(name="  Bug ").name == "Bug"

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            Label(name="   ")


class TestAttachment:
    def test_payload_strips_data_url_prefix(self):
        attachment = Attachment(name="a.png", mime_type="image/png", data="data:image/png;base64,QUJD")
        assert attachment.payload == "QUJD"

    def test_plain_payload_unchanged(self):
        attachment = Attachment(name="a.txt", mime_type="text/plain", data="QUJD")
        assert attachment.payload == "QUJD"


class TestMessageTurn:
    def test_text_then_attachments(self):
        message = Message(
            role=MessageRole.USER,
            content="Describe this",
            attachments=[
                Attachment(name="a.png", mime_type="image/png", data="data:image/png;base64,QUJD")
            ],
        )

        turn = message.to_turn()

        assert turn.role == MessageRole.USER
        assert turn.parts[0].text == "Describe this"
        assert turn.parts[1].is_inline
        assert turn.parts[1].mime_type == "image/png"
        assert turn.parts[1].data == "QUJD"

    def test_attachment_only_message_has_no_text_part(self):
        message = Message(
            role=MessageRole.USER,
            content="  ",
            attachments=[Attachment(name="a.txt", mime_type="text/plain", data="QUJD")],
        )
        parts = message.to_turn().parts
        assert len(parts) == 1
        assert parts[0].is_inline

    def test_empty_message_gets_placeholder(self):
        turn = Message(role=MessageRole.MODEL, content="").to_turn()
        assert [p.text for p in turn.parts] == [" "]

    def test_turn_text_joins_text_parts(self):
        turn = Turn(
            role=MessageRole.MODEL,
            parts=[{"text": "a"}, {"mime_type": "image/png", "data": "QUJD"}, {"text": "b"}],
        )
        assert turn.text == "a b"


class TestStreamOptions:
    def test_negative_budget_rejected(self):
        with pytest.raises(ValidationError):
            StreamOptions(model="m", thinking_budget=-1)

    def test_defaults(self):
        options = StreamOptions(model="deepseek-chat")
        assert options.mode == SessionMode.EXPLORE
        assert options.thinking_budget is None
        assert options.cancel_token is None
