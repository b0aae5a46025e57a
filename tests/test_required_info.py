import pytest

from support_triage.intents import taxonomy
from support_triage.intents.required_info import check_required_info, missing_info_prompt


@pytest.mark.parametrize(
    "intent, text, missing",
    [
        (taxonomy.ORDER_STATUS, "Where is my order?", ["order_number"]),
        (taxonomy.ORDER_STATUS, "Where is order #4013?", []),
        (taxonomy.FIRMWARE_UPDATE_REQUEST, "Please send the firmware", ["unit_type"]),
        (taxonomy.FIRMWARE_UPDATE_REQUEST, "Firmware for my GX-200 please", []),
        (taxonomy.WRONG_ITEM_RECEIVED, "Order 4013: I got the wrong gauge", []),
        (taxonomy.PART_IDENTIFICATION, "What is this thing in the box?", ["part_number"]),
        (taxonomy.THANK_YOU_CLOSE, "Thanks!", []),
    ],
)
def test_missing_required_fields(intent, text, missing):
    check = check_required_info(intent, text)
    assert [f.id for f in check.missing_required] == missing
    assert check.all_required_present is (not missing)


def test_optional_fields_never_block():
    check = check_required_info(taxonomy.RETURN_REFUND_REQUEST, "Refund order 4013 please")
    assert check.all_required_present
    assert [f.id for f in check.missing_optional] == ["reason"]
    assert check.as_payload() == {
        "all_required_present": True,
        "missing_fields": [],
        "present_fields": ["order_number"],
    }


def test_missing_info_prompt_numbers_each_field():
    check = check_required_info(taxonomy.ORDER_CHANGE_REQUEST, "Hi there")
    prompt = missing_info_prompt(check.missing_required, "– Lina")
    assert prompt == (
        "Hey, I can help, but I need a few details first:\n\n"
        "1) Order number\n2) What to change\n\n– Lina"
    )
    assert missing_info_prompt([], "– Lina") == ""
