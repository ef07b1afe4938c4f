from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from envoy_backend.models.chat import ContextKind, GenerationStats, UIContext
from envoy_backend.models.presentation import AGENT_STYLES, ROLE_STYLES, date_group_titles, style_for
from envoy_backend.models.thread import (
    ContainerKind,
    DateGroup,
    Message,
    MessageRole,
    Thread,
    ThreadContainer,
    ThreadFlag,
    ThreadMode,
)

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)

# ========================================================================
# Messages and threads
# ========================================================================


class TestMessage:
    def test_constructors_set_role(self):
        assert Message.user("hi").role == MessageRole.USER
        reply = Message.assistant("hello", agent_name="Marcus Chen")
        assert reply.role == MessageRole.ASSISTANT
        assert reply.agent_name == "Marcus Chen"

    def test_messages_are_immutable(self):
        message = Message.user("hi")
        with pytest.raises(ValidationError):
            message.content = "changed"

    def test_ids_are_unique(self):
        assert Message.user("a").id != Message.user("a").id


class TestThread:
    def test_id_cannot_be_reassigned(self):
        thread = Thread()
        with pytest.raises(ValidationError):
            thread.id = "other"

    def test_mode_follows_binding(self):
        assert Thread().mode == ThreadMode.UNBOUND
        assert Thread(model_id="llama3").mode == ThreadMode.DIRECT_MODEL
        assert Thread(container=ThreadContainer.agent("Marcus Chen"), model_id="llama3").mode == ThreadMode.DIRECT_MODEL
        assert Thread(container=ThreadContainer.agent("Marcus Chen")).mode == ThreadMode.AGENT

    def test_preview(self):
        thread = Thread()
        assert thread.preview == "No messages yet"
        thread.add_message(Message.user("x" * 150))
        assert thread.preview == "x" * 100

    def test_add_message_tracks_participants_and_activity(self):
        thread = Thread(updated_at=datetime(2000, 1, 1, tzinfo=timezone.utc))
        thread.add_message(Message.user("hi"))
        thread.add_message(Message.assistant("hello", agent_name="Sage Meadows"))
        thread.add_message(Message.user("again"))

        assert thread.participants == ["user", "Sage Meadows"]
        assert thread.updated_at.year > 2000

    def test_flag_attribute(self):
        assert ThreadFlag.ARCHIVED.attribute == "is_archived"


class TestThreadContainer:
    def test_accessors(self):
        container = ThreadContainer.space("work")
        assert container.space_id == "work"
        assert container.agent_name is None
        assert ThreadContainer.group("g1").group_id == "g1"

    def test_from_parts(self):
        assert ThreadContainer.from_parts(ContainerKind.GLOBAL, "ignored") == ThreadContainer()
        assert ThreadContainer.from_parts(ContainerKind.AGENT, "Marcus Chen").agent_name == "Marcus Chen"

    def test_from_parts_requires_value(self):
        with pytest.raises(ValueError):
            ThreadContainer.from_parts(ContainerKind.SPACE, None)


# ========================================================================
# Date grouping
# ========================================================================


class TestDateGroup:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (NOW - timedelta(hours=1), DateGroup.TODAY),
            (NOW - timedelta(days=1), DateGroup.YESTERDAY),
            (NOW - timedelta(days=3), DateGroup.THIS_WEEK),
            (NOW - timedelta(days=7), DateGroup.LAST_WEEK),
            (NOW - timedelta(days=10), DateGroup.LAST_WEEK),
            (NOW - timedelta(days=15), DateGroup.THIS_MONTH),
            (NOW - timedelta(days=45), DateGroup.OLDER),
        ],
    )
    def test_buckets(self, value, expected):
        assert DateGroup.from_datetime(value, NOW) == expected

    def test_future_timestamp_is_this_week(self):
        assert DateGroup.from_datetime(NOW + timedelta(days=3), NOW) == DateGroup.THIS_WEEK

    def test_naive_datetimes_are_utc(self):
        naive = datetime(2026, 10, 16, 8, 0)
        assert DateGroup.from_datetime(naive, NOW) == DateGroup.TODAY

    def test_calendar_day_uses_now_time_zone(self):
        tz = timezone(timedelta(hours=-5))
        now = datetime(2026, 10, 16, 1, 0, tzinfo=tz)
        # 23:00 the previous evening in now's zone, but the same UTC date as now
        value = datetime(2026, 10, 16, 4, 0, tzinfo=timezone.utc)
        assert DateGroup.from_datetime(value, now) == DateGroup.YESTERDAY

    def test_display_names_in_order(self):
        assert [group.display_name for group in DateGroup] == [
            "Today", "Yesterday", "This Week", "Last Week", "This Month", "Older",
        ]


# ========================================================================
# Chat models and presentation
# ========================================================================


class TestChatModels:
    def test_ui_context_content(self):
        assert not UIContext().has_content
        assert not UIContext(kind=ContextKind.DOCUMENT, document_content="").has_content
        assert not UIContext(kind=ContextKind.THREAD, document_content="text").has_content
        assert UIContext(kind=ContextKind.DOCUMENT, document_content="text").has_content

    def test_generation_stats_formatting(self):
        stats = GenerationStats(tokens_per_second=42.345, time_to_first_token_ms=250)
        assert stats.formatted_tps == "42.3 tok/s"
        assert stats.formatted_ttft == "0.25s"


class TestPresentation:
    def test_role_styles(self):
        assert style_for(MessageRole.USER) == ROLE_STYLES[MessageRole.USER]
        assert style_for(MessageRole.ASSISTANT) == ROLE_STYLES[MessageRole.ASSISTANT]

    def test_agent_style_overrides_assistant(self):
        assert style_for(MessageRole.ASSISTANT, "Devon Debugger") == AGENT_STYLES["Devon Debugger"]
        assert style_for(MessageRole.ASSISTANT, "Unknown") == ROLE_STYLES[MessageRole.ASSISTANT]
        assert style_for(MessageRole.USER, "Devon Debugger") == ROLE_STYLES[MessageRole.USER]

    def test_date_group_titles(self):
        assert date_group_titles()["last_week"] == "Last Week"
