"""Tests for ResponseShapeValidator: advisory first-response audits."""

from __future__ import annotations

from arcgis_keys_common.validation import (
    API_KEYS_ENDPOINT,
    ITEM_ENDPOINT,
    SEARCH_ENDPOINT,
    EndpointRule,
    ResponseShapeValidator,
    pick_validation_object,
)

COMPLETE_SEARCH_HIT = {
    "id": "1",
    "owner": "me",
    "title": "t",
    "type": "Application",
    "apiToken1ExpirationDate": 1,
    "apiToken2ExpirationDate": 2,
}


class TestPickValidationObject:
    def test_list_lands_on_first_element(self):
        assert pick_validation_object({"results": [{"a": 1}, {"b": 2}]}, ("results",)) == {
            "a": 1
        }

    def test_empty_path_is_root(self):
        assert pick_validation_object({"id": "x"}, ()) == {"id": "x"}

    def test_empty_list_is_none(self):
        assert pick_validation_object({"results": []}, ("results",)) is None

    def test_non_dict_is_none(self):
        assert pick_validation_object("text", ("results",)) is None
        assert pick_validation_object({"results": ["id"]}, ("results",)) is None


class TestObserve:
    def test_complete_response_has_no_warnings(self):
        validator = ResponseShapeValidator()
        validator.observe(SEARCH_ENDPOINT, {"results": [COMPLETE_SEARCH_HIT]})
        assert validator.warnings() == []

    def test_missing_fields_warn_once_each(self):
        validator = ResponseShapeValidator()
        validator.observe(API_KEYS_ENDPOINT, {"apiKeys": [{"itemId": "x", "owner": "me"}]})
        assert validator.warnings() == [
            'Response validation warning: missing field "httpReferrers" '
            "in first /portals/self/apiKeys response.",
            'Response validation warning: missing field "privileges" '
            "in first /portals/self/apiKeys response.",
        ]

    def test_only_first_response_per_endpoint(self):
        validator = ResponseShapeValidator()
        validator.observe(SEARCH_ENDPOINT, {"results": [COMPLETE_SEARCH_HIT]})
        validator.observe(SEARCH_ENDPOINT, {"results": [{"id": "2"}]})
        assert validator.warnings() == []

    def test_empty_first_response_consumes_the_slot(self):
        validator = ResponseShapeValidator()
        validator.observe(SEARCH_ENDPOINT, {"results": []})
        validator.observe(SEARCH_ENDPOINT, {"results": [{"id": "2"}]})
        assert validator.warnings() == []

    def test_endpoints_tracked_separately(self):
        validator = ResponseShapeValidator()
        validator.observe(SEARCH_ENDPOINT, {"results": [COMPLETE_SEARCH_HIT]})
        validator.observe(ITEM_ENDPOINT, {"id": "1"})
        assert len(validator.warnings()) == 4
        assert all(ITEM_ENDPOINT in w for w in validator.warnings())

    def test_unknown_endpoint_ignored(self):
        validator = ResponseShapeValidator()
        validator.observe("/nowhere", {"anything": True})
        assert validator.warnings() == []

    def test_never_raises_on_garbage(self):
        validator = ResponseShapeValidator()
        for response in (None, 3, "text", [1, 2], {"results": "no"}):
            validator.observe(SEARCH_ENDPOINT, response)
        assert validator.warnings() == []

    def test_custom_rules(self):
        validator = ResponseShapeValidator(
            rules=(EndpointRule(endpoint="/x", object_path=(), required_fields=("a",)),)
        )
        validator.observe("/x", {})
        assert len(validator.warnings()) == 1

    def test_warnings_returns_copy(self):
        validator = ResponseShapeValidator()
        validator.observe(ITEM_ENDPOINT, {})
        validator.warnings().clear()
        assert validator.warnings()
