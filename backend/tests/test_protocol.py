import pytest

from seatsync.protocol import (
    CameraStateChange,
    DisplayNameUpdate,
    GetPlayerStates,
    ProtocolError,
    Register,
    RenameUser,
    SelectSlot,
    SlotSelectionResult,
    SlotsUpdate,
    parse_client_message,
    parse_server_message,
)


def test_parse_select_slot_uses_camel_case_fields() -> None:
    message = parse_client_message(
        '{"type": "select_slot", "slotNumber": 5, "dragAndDrop": true, "targetUserId": "bob"}'
    )

    assert isinstance(message, SelectSlot)
    assert message.slot_number == 5
    assert message.drag_and_drop is True
    assert message.target_user_id == "bob"


def test_select_slot_without_number_means_auto_assign() -> None:
    message = parse_client_message({"type": "select_slot"})

    assert isinstance(message, SelectSlot)
    assert message.slot_number is None
    assert SelectSlot().dump() == {"type": "select_slot", "dragAndDrop": False}


def test_parse_camera_state_change() -> None:
    message = parse_client_message({"type": "camera_state_change", "enabled": True})

    assert isinstance(message, CameraStateChange)
    assert message.enabled is True


@pytest.mark.parametrize(
    ("raw", "detail"),
    [
        ("not json", "Invalid payload"),
        ("[1, 2]", "Payload must be an object"),
        ('{"slotNumber": 1}', "Message type is required"),
        ('{"type": "teleport"}', "Unsupported message type"),
    ],
)
def test_malformed_frames_raise_protocol_error(raw: str, detail: str) -> None:
    with pytest.raises(ProtocolError) as exc_info:
        parse_client_message(raw)
    assert str(exc_info.value) == detail


def test_register_requires_user_id() -> None:
    with pytest.raises(ProtocolError) as exc_info:
        parse_client_message({"type": "register", "userId": ""})
    assert "userId" in str(exc_info.value)


def test_register_dump_matches_wire_format() -> None:
    assert Register(user_id="alice").dump() == {"type": "register", "userId": "alice"}


def test_slot_selection_result_omits_empty_message() -> None:
    assert SlotSelectionResult(success=True, slot_number=3).dump() == {
        "type": "slot_selection_result",
        "success": True,
        "slotNumber": 3,
    }


def test_server_slots_update_parses_into_models() -> None:
    message = parse_server_message(
        {"type": "slots_update", "slots": [{"userId": "alice", "slotNumber": 1}]}
    )

    assert isinstance(message, SlotsUpdate)
    assert message.slots[0].user_id == "alice"
    assert message.dump() == {
        "type": "slots_update",
        "slots": [{"userId": "alice", "slotNumber": 1}],
    }


def test_parse_rename_user_and_player_state_request() -> None:
    rename = parse_client_message(
        {"type": "rename_user", "targetUserId": "bob", "newName": "Bobby"}
    )
    assert isinstance(rename, RenameUser)
    assert rename.target_user_id == "bob"
    assert rename.new_name == "Bobby"

    assert isinstance(parse_client_message({"type": "get_player_states"}), GetPlayerStates)


def test_rename_user_rejects_empty_name() -> None:
    with pytest.raises(ProtocolError) as exc_info:
        parse_client_message({"type": "rename_user", "targetUserId": "bob", "newName": ""})
    assert "newName" in str(exc_info.value)


def test_display_name_update_parses_on_client() -> None:
    message = parse_server_message(
        {"type": "display_name_update", "userId": "bob", "displayName": "Bobby"}
    )

    assert isinstance(message, DisplayNameUpdate)
    assert message.display_name == "Bobby"


def test_bytes_that_are_not_json_are_invalid_payloads() -> None:
    with pytest.raises(ProtocolError) as exc_info:
        parse_client_message(b"\xff\x00")
    assert str(exc_info.value) == "Invalid payload"
