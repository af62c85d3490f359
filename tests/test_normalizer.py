from backend.config import COUNTER_SCHEMA, PRODUCTION_SCHEMA
from backend.normalizer import (
    Err,
    Ok,
    coerce_number,
    extract_number,
    find_balanced_object,
    normalize_reply,
    parse_structured,
    record_from_object,
)


def test_fenced_json_reply():
    text = '```json\n{"isRelevant":true,"boxCount":45,"bottleCount":4523,"summary":"counter"}\n```'
    record = normalize_reply(text, COUNTER_SCHEMA)
    assert record["isRelevant"] is True
    assert record["boxCount"] == 45
    assert record["bottleCount"] == 4523
    assert record["summary"] == "counter"
    assert record["rawText"] == text


def test_bare_json_reply():
    result = parse_structured('{"isRelevant": true, "bottleCount": 10}', COUNTER_SCHEMA)
    assert isinstance(result, Ok)
    assert result.record["bottleCount"] == 10
    assert result.record["boxCount"] is None


def test_json_surrounded_by_prose():
    text = 'Here is the result: {"isRelevant": true, "completedQuantity": 3450, "lotNo": "LOT-1"} hope it helps {x}'
    record = normalize_reply(text, PRODUCTION_SCHEMA)
    assert record["isRelevant"] is True
    assert record["completedQuantity"] == 3450
    assert record["lotNo"] == "LOT-1"
    assert record["plannedQuantity"] is None
    assert record["productName"] is None


def test_missing_fields_default():
    record = normalize_reply("{}", PRODUCTION_SCHEMA)
    assert record["isRelevant"] is False
    assert record["summary"] == ""
    for name in PRODUCTION_SCHEMA.fields:
        assert record[name] is None


def test_unparsable_text_degrades_to_unrecognized_reading():
    result = parse_structured("I see a desk", COUNTER_SCHEMA)
    assert isinstance(result, Err)
    assert result.raw_text == "I see a desk"

    record = normalize_reply("I see a desk", COUNTER_SCHEMA)
    assert record["isRelevant"] is False
    assert record["boxCount"] is None
    assert record["bottleCount"] is None
    assert "I see a desk" in record["summary"]


def test_non_object_json_is_an_error():
    assert isinstance(parse_structured("[1, 2, 3]", COUNTER_SCHEMA), Err)
    assert isinstance(parse_structured(None, COUNTER_SCHEMA), Err)


def test_field_coercion():
    data = {
        "isRelevant": "true",
        "plannedQuantity": "5,000",
        "completedQuantity": 3450.0,
        "operatingLine": "  ",
        "productName": 500,
        "summary": 12,
    }
    record = record_from_object(data, PRODUCTION_SCHEMA)
    assert record["isRelevant"] is True
    assert record["plannedQuantity"] == 5000
    assert record["completedQuantity"] == 3450
    assert record["operatingLine"] is None
    assert record["productName"] == "500"
    assert record["summary"] == ""


def test_coerce_number_rejects_junk():
    assert coerce_number(True) is None
    assert coerce_number("about 40") is None
    assert coerce_number(12.5) is None
    assert coerce_number(float("nan")) is None


def test_balanced_object_ignores_braces_in_strings():
    text = 'prefix {"summary": "a } b", "n": {"x": 1}} trailing }'
    assert find_balanced_object(text) == '{"summary": "a } b", "n": {"x": 1}}'
    assert find_balanced_object("no braces") is None


def test_extract_number_prefers_four_digit_runs():
    assert extract_number("The count is 1,234 units on line 2") == 1234


def test_extract_number_fallbacks():
    assert extract_number("box 12 of 345") == 345
    assert extract_number("lines 12 and 34") == 34
    assert extract_number("total 123456 and 7") == 123456
    assert extract_number("only 7") == 7


def test_extract_number_none():
    assert extract_number("NONE") is None
    assert extract_number("") is None
    assert extract_number(None) is None
