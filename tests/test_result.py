from app.services.result import EMPTY_ANSWER, KEYS_EXHAUSTED, NO_KEYS, Result


class TestResult:
    def test_success(self):
        result = Result.success("Ebi was born in Tehran.")
        assert result.ok is True
        assert result.value == "Ebi was born in Tehran."
        assert result.error is None
        assert result.error_code is None

    def test_failure_keeps_code(self):
        result = Result.failure("All search API keys exhausted", KEYS_EXHAUSTED)
        assert result.ok is False
        assert result.value is None
        assert result.error == "All search API keys exhausted"
        assert result.error_code == KEYS_EXHAUSTED


class TestFailedWith:
    def test_matches_any_listed_code(self):
        result = Result.failure("All search API keys exhausted", KEYS_EXHAUSTED)
        assert result.failed_with(NO_KEYS, KEYS_EXHAUSTED) is True

    def test_other_code(self):
        result = Result.failure("Search returned no answer", EMPTY_ANSWER)
        assert result.failed_with(KEYS_EXHAUSTED) is False

    def test_success_never_failed(self):
        assert Result.success("answer").failed_with(EMPTY_ANSWER) is False
