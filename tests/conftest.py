"""Shared fixtures for the vote role bot tests."""

import pytest

from vote_store import VoteStore
from voter_role import ActionResult, Outcome

NOW = 1_700_000_000_000
WEEK_MS = 7 * 24 * 60 * 60 * 1000


class FakeActuator:
    """Records grant/revoke calls; results may be ActionResults or exceptions."""

    def __init__(self, grant_result=None, revoke_results=None):
        self.grant_result = grant_result or ActionResult(Outcome.SUCCESS, notice_sent=True)
        self.revoke_results = revoke_results or {}
        self.granted = []
        self.revoked = []

    async def grant(self, user_id, expires_at=None):
        self.granted.append((user_id, expires_at))
        if isinstance(self.grant_result, Exception):
            raise self.grant_result
        return self.grant_result

    async def revoke(self, user_id):
        self.revoked.append(user_id)
        result = self.revoke_results.get(user_id, ActionResult(Outcome.SUCCESS, notice_sent=True))
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def store(tmp_path):
    return VoteStore(str(tmp_path / "votes.db"))


@pytest.fixture
def actuator():
    return FakeActuator()
