"""Reconciliation services for the forum client."""

from .conversations import Conversation, ConversationService, count_unread, project_conversations
from .message_log import MessageLog
from .notifications import Notice, NoticeBoard, NoticeLevel
from .optimistic import OptimisticMutation
from .push import LocalPushChannel, PushChannel, Subscription
from .realtime import MalformedEventError, RealtimeMerge
from .session import ForumSession, IdentityProvider, StaticIdentity
from .threads import PostLog, ThreadService
from .vote_ledger import TallyDelta, VoteBook, VoteLedger, VoteState, VoteTransition, plan_toggle
from .vote_machine import VoteOutcome, VoteStateMachine

__all__ = [
    "Conversation",
    "ConversationService",
    "ForumSession",
    "IdentityProvider",
    "LocalPushChannel",
    "MalformedEventError",
    "MessageLog",
    "Notice",
    "NoticeBoard",
    "NoticeLevel",
    "OptimisticMutation",
    "PostLog",
    "PushChannel",
    "RealtimeMerge",
    "StaticIdentity",
    "Subscription",
    "TallyDelta",
    "ThreadService",
    "VoteBook",
    "VoteLedger",
    "VoteOutcome",
    "VoteState",
    "VoteStateMachine",
    "VoteTransition",
    "count_unread",
    "plan_toggle",
    "project_conversations",
]
