"""Tests for the outbound AI response validator."""

from auma.services.compliance.validator import validate_response


class TestValidateResponse:
    def test_clean_response(self):
        result = validate_response("Your appraisal was received and your file is in underwriting.")
        assert result.valid is True
        assert result.violations == []

    def test_violations_accumulate(self):
        result = validate_response(
            "I recommend the FHA loan at 3.5% with a $1,500 monthly payment"
        )
        assert result.valid is False
        assert result.violations == [
            "Contains specific rate percentage",
            "Contains specific payment amount",
            'Contains recommendation phrase: "i recommend"',
        ]

    def test_rate_percentage_with_space(self):
        result = validate_response("Rates are around 6 % this week.")
        assert result.violations == ["Contains specific rate percentage"]

    def test_dollar_amount_without_payment_word_is_fine(self):
        result = validate_response("Your earnest money deposit of $5,000 was received.")
        assert result.valid is True

    def test_payment_word_without_amount_is_fine(self):
        result = validate_response("Your first payment date will be on your closing disclosure.")
        assert result.valid is True

    def test_one_violation_per_phrase(self):
        result = validate_response("In my opinion you should wait. I think you should wait.")
        assert 'Contains recommendation phrase: "you should"' in result.violations
        assert 'Contains recommendation phrase: "in my opinion"' in result.violations
        assert 'Contains recommendation phrase: "i think you should"' in result.violations
        assert len(result.violations) == 3

    def test_custom_phrases(self):
        result = validate_response("Go with the ARM.", recommendation_phrases=["go with"])
        assert result.violations == ['Contains recommendation phrase: "go with"']

    def test_empty_phrase_list_disables_phrase_check(self):
        result = validate_response("I recommend waiting.", recommendation_phrases=[])
        assert result.valid is True
