"""
Tests for the judgment protocol
===============================

End-to-end scenarios over a real SQLite store, an in-memory cache and a
scripted generation backend.
"""

import pytest

from ai_judge.cache import JudgmentCache
from ai_judge.errors import GenerationFailedError, NotFoundError, ValidationError
from ai_judge.generators import GeneratorError
from ai_judge.judge import JudgmentProtocol
from ai_judge.models import CaseStatus, JudgmentKind

from conftest import FakeGenerator, argument_json, judgment_json, scripted_judge


# =============================================================================
# Tentative judgment
# =============================================================================

class TestGenerateJudgment:
    def test_first_judgment_is_tentative_version_one(self, make_protocol, store, case_id):
        protocol = make_protocol(FakeGenerator(handler=scripted_judge()))

        view = protocol.generate_judgment(case_id)

        assert view.version == 1
        assert view.kind == JudgmentKind.TENTATIVE
        assert view.cached is False
        assert 40 <= view.confidence <= 70
        assert store.get_case(case_id).status == CaseStatus.JUDGED

    def test_prompt_carries_case_context_and_jurisdiction(self, make_protocol, case_id):
        generator = FakeGenerator(handler=scripted_judge())
        make_protocol(generator).generate_judgment(case_id)

        system, user = generator.calls[0]
        assert "INDIA" in system
        assert "Loan of $5000 not repaid" in user
        assert "It was a gift" in user

    def test_second_call_served_from_cache(self, make_protocol, case_id):
        generator = FakeGenerator(handler=scripted_judge())
        protocol = make_protocol(generator)

        first = protocol.generate_judgment(case_id)
        second = protocol.generate_judgment(case_id)

        assert second.cached is True
        assert second.verdict == first.verdict
        assert len(generator.calls) == 1

    def test_existing_judgment_not_regenerated_without_cache(self, store, settings, case_id):
        generator = FakeGenerator(handler=scripted_judge())
        protocol = JudgmentProtocol(store, JudgmentCache(), generator, settings)

        protocol.generate_judgment(case_id)
        again = protocol.generate_judgment(case_id)

        assert again.version == 1
        assert len(generator.calls) == 1
        assert len(store.get_all_judgments(case_id)) == 1

    def test_confidence_clamped_into_tentative_band(self, make_protocol, case_id):
        high = make_protocol(FakeGenerator(handler=scripted_judge(tentative_confidence=92)))
        assert high.generate_judgment(case_id).confidence == 70

    def test_missing_confidence_defaults(self, make_protocol, case_id):
        reply = '{"verdict": "It appears to be a loan", "reasoning": "Preliminary"}'
        view = make_protocol(FakeGenerator([reply])).generate_judgment(case_id)
        assert view.confidence == 50
        assert view.legal_basis == []

    def test_unknown_case(self, make_protocol):
        with pytest.raises(NotFoundError):
            make_protocol(FakeGenerator(handler=scripted_judge())).generate_judgment("missing")

    def test_retry_recovers_from_bad_json(self, make_protocol, case_id):
        generator = FakeGenerator(["I think it was a loan.", judgment_json()])
        view = make_protocol(generator).generate_judgment(case_id)

        assert view.version == 1
        assert len(generator.calls) == 2

    def test_exhausted_retries_write_nothing(self, make_protocol, store, fake_redis, case_id):
        generator = FakeGenerator([GeneratorError("HTTP 500"), GeneratorError("HTTP 500")])

        with pytest.raises(GenerationFailedError):
            make_protocol(generator).generate_judgment(case_id)

        assert store.get_all_judgments(case_id) == []
        assert store.get_case(case_id).status == CaseStatus.PENDING
        assert fake_redis.data == {}


# =============================================================================
# Arguments
# =============================================================================

class TestSubmitArgument:
    def test_argument_before_judgment(self, make_protocol, case_id):
        protocol = make_protocol(FakeGenerator(handler=scripted_judge()))
        with pytest.raises(NotFoundError):
            protocol.submit_argument(case_id, "A", "The receipt shows repayment terms")

    def test_invalid_side(self, make_protocol, case_id):
        protocol = make_protocol(FakeGenerator(handler=scripted_judge()))
        with pytest.raises(ValidationError):
            protocol.submit_argument(case_id, "C", "Some argument")

    def test_blank_argument(self, make_protocol, case_id):
        protocol = make_protocol(FakeGenerator(handler=scripted_judge()))
        with pytest.raises(ValidationError):
            protocol.submit_argument(case_id, "A", "   ")

    def test_not_reconsidered_keeps_judgment_and_cache(self, make_protocol, store, fake_redis, cache, case_id):
        protocol = make_protocol(FakeGenerator(handler=scripted_judge()))
        protocol.generate_judgment(case_id)

        outcome = protocol.submit_argument(case_id, "A", "The bank transfer receipt shows a loan")

        assert outcome.reconsidered is False
        assert outcome.updated_reasoning is None
        assert outcome.sequence_number == 1
        assert outcome.remaining_arguments == 4
        assert outcome.strengthens == "A"
        assert outcome.weakens == "B"
        assert len(store.get_all_judgments(case_id)) == 1
        assert cache.key_for(case_id) in fake_redis.data
        assert store.get_case(case_id).status == CaseStatus.IN_ARGUMENT

    def test_reconsidered_appends_version_and_invalidates_cache(self, make_protocol, store, fake_redis, cache, case_id):
        protocol = make_protocol(FakeGenerator(handler=scripted_judge(reconsider=True)))
        initial = protocol.generate_judgment(case_id)

        outcome = protocol.submit_argument(case_id, "A", "The receipt says 'loan, repay by December'")

        assert outcome.reconsidered is True
        assert outcome.updated_reasoning == "Revised after argument 1"
        latest = store.get_latest_judgment(case_id)
        assert latest.version == 2
        assert latest.kind == JudgmentKind.RECONSIDERED
        assert latest.verdict == initial.verdict
        assert latest.reasoning == "Revised after argument 1"
        assert latest.confidence == 62
        assert cache.key_for(case_id) not in fake_redis.data

        # the next read repopulates the cache with the revised judgment
        view = protocol.generate_judgment(case_id)
        assert view.version == 2
        assert view.cached is False

    def test_argument_history_in_prompt(self, make_protocol, case_id):
        generator = FakeGenerator(handler=scripted_judge())
        protocol = make_protocol(generator)
        protocol.generate_judgment(case_id)

        protocol.submit_argument(case_id, "A", "The receipt mentions repayment")
        protocol.submit_argument(case_id, "B", "The birthday message calls it a gift")

        _, user = generator.calls[-1]
        assert "The receipt mentions repayment" in user
        assert "The birthday message calls it a gift" in user

    def test_cap_of_five(self, make_protocol, store, case_id):
        generator = FakeGenerator(handler=scripted_judge())
        protocol = make_protocol(generator)
        protocol.generate_judgment(case_id)

        for i in range(5):
            outcome = protocol.submit_argument(case_id, "AB"[i % 2], f"Argument number {i + 1}")
        assert outcome.sequence_number == 5
        assert outcome.remaining_arguments == 0

        calls = len(generator.calls)
        with pytest.raises(ValidationError):
            protocol.submit_argument(case_id, "A", "One more")
        assert len(generator.calls) == calls
        assert store.get_argument_count(case_id) == 5

    def test_failed_evaluation_writes_nothing(self, make_protocol, store, case_id):
        generator = FakeGenerator([judgment_json(), "no json here", "still no json"])
        protocol = make_protocol(generator)
        protocol.generate_judgment(case_id)

        with pytest.raises(GenerationFailedError):
            protocol.submit_argument(case_id, "A", "The receipt")

        assert store.get_argument_count(case_id) == 0
        assert len(store.get_all_judgments(case_id)) == 1

    def test_reconsidered_without_reasoning_is_retried(self, make_protocol, store, case_id):
        bad = argument_json(reconsidered=True)
        good = argument_json(reconsidered=True, updated_reasoning="Receipt shifts the balance")
        generator = FakeGenerator([judgment_json(), bad, good])
        protocol = make_protocol(generator)
        protocol.generate_judgment(case_id)

        outcome = protocol.submit_argument(case_id, "A", "The receipt")

        assert outcome.updated_reasoning == "Receipt shifts the balance"
        assert "IMPORTANT" in generator.calls[-1][1]
        assert store.get_latest_judgment(case_id).version == 2

    def test_list_arguments_remaining(self, make_protocol, case_id):
        protocol = make_protocol(FakeGenerator(handler=scripted_judge()))
        protocol.generate_judgment(case_id)
        protocol.submit_argument(case_id, "B", "It was a birthday gift")

        arguments, remaining = protocol.list_arguments(case_id)
        assert [a.sequence_number for a in arguments] == [1]
        assert remaining == 4


# =============================================================================
# Final verdict
# =============================================================================

class TestFinalVerdict:
    def test_final_without_arguments(self, make_protocol, store, case_id):
        generator = FakeGenerator(handler=scripted_judge())
        protocol = make_protocol(generator)
        protocol.generate_judgment(case_id)

        final = protocol.generate_final_verdict(case_id)

        assert final.version == 2
        assert final.kind == JudgmentKind.FINAL
        assert 70 <= final.confidence <= 95
        assert "No arguments were presented" in generator.calls[-1][1]

    def test_final_after_reconsideration(self, make_protocol, store, fake_redis, cache, case_id):
        generator = FakeGenerator(handler=scripted_judge(reconsider=True))
        protocol = make_protocol(generator)
        protocol.generate_judgment(case_id)
        protocol.submit_argument(case_id, "A", "The receipt says 'loan, repay by December'")
        protocol.generate_judgment(case_id)

        final = protocol.generate_final_verdict(case_id)

        assert final.version == 3
        assert [j.version for j in store.get_all_judgments(case_id)] == [1, 2, 3]
        assert cache.key_for(case_id) not in fake_redis.data
        _, user = generator.calls[-1]
        assert "The receipt says 'loan, repay by December'" in user
        assert "Revised after argument 1" in user

    def test_final_confidence_clamped(self, make_protocol, case_id):
        protocol = make_protocol(FakeGenerator(handler=scripted_judge(final_confidence=99)))
        protocol.generate_judgment(case_id)
        assert protocol.generate_final_verdict(case_id).confidence == 95

    def test_final_requires_judgment(self, make_protocol, case_id):
        protocol = make_protocol(FakeGenerator(handler=scripted_judge()))
        with pytest.raises(NotFoundError):
            protocol.generate_final_verdict(case_id)

    def test_final_closes_case(self, make_protocol, store, case_id):
        protocol = make_protocol(FakeGenerator(handler=scripted_judge()))
        protocol.generate_judgment(case_id)
        protocol.generate_final_verdict(case_id)

        with pytest.raises(ValidationError):
            protocol.generate_final_verdict(case_id)
        with pytest.raises(ValidationError):
            protocol.submit_argument(case_id, "A", "Late argument")
        assert len(store.get_all_judgments(case_id)) == 2

    def test_judgment_after_final_returns_final(self, make_protocol, case_id):
        generator = FakeGenerator(handler=scripted_judge())
        protocol = make_protocol(generator)
        protocol.generate_judgment(case_id)
        protocol.generate_final_verdict(case_id)

        view = protocol.generate_judgment(case_id)

        assert view.kind == JudgmentKind.FINAL
        assert len(generator.calls) == 2

    def test_failed_final_leaves_history(self, make_protocol, store, case_id):
        generator = FakeGenerator([judgment_json(), "garbage", "garbage"])
        protocol = make_protocol(generator)
        protocol.generate_judgment(case_id)

        with pytest.raises(GenerationFailedError):
            protocol.generate_final_verdict(case_id)
        assert [j.kind for j in store.get_all_judgments(case_id)] == [JudgmentKind.TENTATIVE]
