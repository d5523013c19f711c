"""
Property-based tests for the retry backoff and the credential text format.
"""
from datetime import timedelta

from hypothesis import HealthCheck, given, settings
import hypothesis.strategies as st

from delivery.models import CREDENTIAL_SEPARATOR
from delivery.services.notifications import join_credentials, split_credentials
from delivery.services.sweeps import is_retry_due, retry_delay


delay_schedules = st.lists(st.integers(min_value=0, max_value=24 * 60), min_size=1, max_size=6).map(sorted)


class TestRetryDelayProperty:
    """
    For any non-decreasing delay schedule, the backoff never shrinks as
    retries accumulate, and stays at the last delay once the schedule is
    exhausted.
    """

    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(delays=delay_schedules, retry_count=st.integers(min_value=0, max_value=20))
    def test_backoff_is_monotonic(self, delays, retry_count):
        assert retry_delay(retry_count, delays) <= retry_delay(retry_count + 1, delays)

    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(delays=delay_schedules, extra=st.integers(min_value=0, max_value=50))
    def test_backoff_is_clamped(self, delays, extra):
        assert retry_delay(len(delays) - 1 + extra, delays) == timedelta(minutes=delays[-1])

    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        delays=delay_schedules,
        retry_count=st.integers(min_value=0, max_value=10),
        waited=st.integers(min_value=0, max_value=48 * 60),
    )
    def test_due_iff_waited_long_enough(self, delays, retry_count, waited):
        from django.utils import timezone

        now = timezone.now()
        failed_at = now - timedelta(minutes=waited)
        expected = timedelta(minutes=waited) >= retry_delay(retry_count, delays)

        assert is_retry_due(failed_at, retry_count, now=now, delays=delays) is expected


class TestCredentialTextProperty:
    """
    For any list of credential blocks free of the separator's dashes, the
    joined item text splits back into the same blocks.
    """

    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(blocks=st.lists(
        st.text(alphabet=st.characters(blacklist_characters="-"), min_size=1, max_size=80),
        min_size=1,
        max_size=5,
    ))
    def test_split_recovers_blocks(self, blocks):
        joined = join_credentials(blocks)

        assert joined.count(CREDENTIAL_SEPARATOR) == len(blocks) - 1
        assert split_credentials(joined) == blocks
