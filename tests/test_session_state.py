import unittest

from thinking_relay.models import BackendUsage, Message, Role
from thinking_relay.session import PipelineSession, SessionState


def _session() -> PipelineSession:
    return PipelineSession(conversation=[Message(Role.USER, "hi")])


class SessionStateTests(unittest.TestCase):
    def test_happy_path_reaches_closed(self) -> None:
        session = _session()
        for state in (
            SessionState.REASONER_RUNNING,
            SessionState.REASONER_DONE,
            SessionState.ANSWERER_RUNNING,
            SessionState.ANSWERER_DONE,
            SessionState.FINALIZING,
            SessionState.CLOSED,
        ):
            session.advance(state)
        self.assertIs(SessionState.CLOSED, session.state)

    def test_error_is_reachable_from_running_states_only(self) -> None:
        session = _session()
        session.advance(SessionState.REASONER_RUNNING)
        session.advance(SessionState.ERROR)
        session.advance(SessionState.CLOSED)

        done = _session()
        done.advance(SessionState.REASONER_RUNNING)
        done.advance(SessionState.REASONER_DONE)
        with self.assertRaises(RuntimeError):
            done.advance(SessionState.ERROR)

    def test_answerer_cannot_start_before_reasoner_finishes(self) -> None:
        session = _session()
        session.advance(SessionState.REASONER_RUNNING)
        with self.assertRaises(RuntimeError):
            session.advance(SessionState.ANSWERER_RUNNING)

    def test_no_retry_edge_from_error(self) -> None:
        session = _session()
        session.advance(SessionState.REASONER_RUNNING)
        session.advance(SessionState.ERROR)
        with self.assertRaises(RuntimeError):
            session.advance(SessionState.REASONER_RUNNING)

    def test_closed_is_final(self) -> None:
        session = _session()
        session.advance(SessionState.CLOSED)
        with self.assertRaises(RuntimeError):
            session.advance(SessionState.REASONER_RUNNING)

    def test_sessions_do_not_share_accumulators(self) -> None:
        first = _session()
        second = _session()
        first.reasoning_parts.append("a")
        first.reasoner_usage.observe(BackendUsage(1, 1, 2))

        self.assertEqual("a", first.reasoning)
        self.assertEqual("", second.reasoning)
        self.assertFalse(second.reasoner_usage.observed)
        self.assertNotEqual(first.session_id, second.session_id)


if __name__ == "__main__":
    unittest.main()
