"""
Shared fixtures: a temporary SQLite store, an in-memory Redis double and a
scripted generation backend.
"""

import json
import time

import pytest
import redis

from ai_judge.cache import JudgmentCache
from ai_judge.config import Settings
from ai_judge.judge import JudgmentProtocol
from ai_judge.models import SideInput
from ai_judge.store import CaseStore


# =============================================================================
# Doubles
# =============================================================================

class FakeRedis:
    """Dict-backed stand-in for a redis client (get/setex/delete)."""

    def __init__(self, fail: bool = False):
        self.data = {}
        self.ttls = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("connection refused")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self._check()
        self.data.pop(key, None)
        self.ttls.pop(key, None)

    def close(self):
        pass


class FakeGenerator:
    """Returns queued replies (or raises queued exceptions) and records prompts."""

    name = "fake"

    def __init__(self, replies=None, handler=None, delay: float = 0.0):
        self.replies = list(replies or [])
        self.handler = handler
        self.delay = delay
        self.calls = []

    def generate(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if self.delay:
            time.sleep(self.delay)
        if self.handler is not None:
            return self.handler(system_prompt, user_prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def judgment_json(verdict="It appears the transfer was likely a loan", reasoning="Preliminary view: the receipt suggests repayment terms",
                  legal_basis=None, confidence=55, **extra):
    return json.dumps({
        "verdict": verdict,
        "reasoning": reasoning,
        "legalBasis": legal_basis if legal_basis is not None else ["Indian Contract Act, 1872 - Section 2(h)"],
        "confidence": confidence,
        **extra,
    })


def argument_json(response="That's a good point about the receipt.", reconsidered=False, updated_reasoning=None,
                  strengthens="Side A", weakens="Side B", confidence=60, **extra):
    payload = {
        "response": response,
        "strengthens": strengthens,
        "weakens": weakens,
        "uncertaintyRemains": "Whether repayment was ever demanded",
        "reconsidered": reconsidered,
        "provisionalNote": "This does not constitute a final verdict.",
        "confidence": confidence,
        **extra,
    }
    if updated_reasoning is not None:
        payload["updatedReasoning"] = updated_reasoning
    return json.dumps(payload)


def scripted_judge(reconsider=False, tentative_confidence=55, final_confidence=85):
    """Route by system prompt: tentative, argument evaluation or final verdict."""
    counter = {"arguments": 0}

    def handler(system_prompt, user_prompt):
        if "TENTATIVE" in system_prompt:
            return judgment_json(confidence=tentative_confidence)
        if "new argument" in system_prompt:
            counter["arguments"] += 1
            if reconsider:
                return argument_json(
                    reconsidered=True,
                    updated_reasoning=f"Revised after argument {counter['arguments']}",
                    confidence=62,
                )
            return argument_json()
        if "FINAL" in system_prompt:
            return judgment_json(
                verdict="I find that the $5000 was a loan and must be repaid",
                reasoning="The assessment evolved after the bank transfer receipt was argued",
                confidence=final_confidence,
            )
        raise AssertionError(f"Unexpected prompt: {system_prompt[:80]}")

    return handler


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings():
    return Settings(llm_retry_backoff=0.0, redis_url=None)


@pytest.fixture
def store(tmp_path):
    s = CaseStore(f"sqlite:///{tmp_path / 'test.db'}")
    s.create_tables()
    return s


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return JudgmentCache(client=fake_redis)


@pytest.fixture
def loan_sides():
    return (
        SideInput(summary="Loan of $5000 not repaid", evidence=["Bank transfer of $5000 on 2023-03-15"]),
        SideInput(summary="It was a gift", evidence=["Birthday message sent the same day"]),
    )


@pytest.fixture
def case_id(store, loan_sides):
    return store.create_case("Civil", "INDIA", *loan_sides)


@pytest.fixture
def make_protocol(store, cache, settings):
    def make(generator):
        return JudgmentProtocol(store, cache, generator, settings)
    return make
