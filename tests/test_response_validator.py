"""
Response validator tests
"""

from app.services.response_validator import MIN_RESPONSE_LENGTH, validate_response


class TestValidateResponse:

    def test_length_boundary(self):
        assert validate_response("a" * (MIN_RESPONSE_LENGTH - 1)).should_retry is True
        assert validate_response("a" * MIN_RESPONSE_LENGTH).should_retry is False

    def test_too_short_issue(self):
        result = validate_response("Sure!")
        assert result.issues == ["Response too short"]

    def test_meta_commentary(self):
        result = validate_response(
            "That is a great point about your question regarding packing lists for Rome."
        )
        assert result.should_retry is True
        assert result.issues == ["Response is meta-commentary"]

    def test_meta_commentary_case_insensitive(self):
        result = validate_response("You Asked about Lisbon, which has lovely tiled facades and hills.")
        assert result.should_retry is True

    def test_hedging_is_advisory_only(self):
        result = validate_response(
            "I think Lisbon is probably your best bet for a sunny city break in early spring."
        )
        assert result.should_retry is False
        assert "Potential hallucination pattern detected: I think" in result.issues
        assert "Potential hallucination pattern detected: probably" in result.issues

    def test_clean_reply(self):
        result = validate_response(
            "Lisbon offers mild spring weather, great seafood and walkable historic neighbourhoods."
        )
        assert result.should_retry is False
        assert result.issues == []

    def test_external_data_does_not_change_outcome(self):
        reply = "Pack light layers and a rain jacket for a week of changeable Scottish weather."
        assert validate_response(reply, {"weather": {"temperature": 12}}) == validate_response(reply)
