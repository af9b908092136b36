"""Pydantic models for ccweb."""

from ccweb.models.agent import AgentTaskRequest, AgentTaskResponse, AgentToolCall
from ccweb.models.files import DirectoryTree, FileReadResponse, PathValidation, TreeNode
from ccweb.models.sessions import (
    ChatMessage,
    ModelUsage,
    Pagination,
    ResumeInfo,
    SessionMetadata,
    SessionPage,
    StatsCache,
    TokenTotals,
    ToolCall,
    ToolCallDetails,
    UsageDelta,
    UsageTotals,
)
from ccweb.models.usage import ClaudeUsageData, UsageLimit

__all__ = [
    "AgentTaskRequest",
    "AgentTaskResponse",
    "AgentToolCall",
    "ChatMessage",
    "ClaudeUsageData",
    "DirectoryTree",
    "FileReadResponse",
    "ModelUsage",
    "Pagination",
    "PathValidation",
    "ResumeInfo",
    "SessionMetadata",
    "SessionPage",
    "StatsCache",
    "TokenTotals",
    "ToolCall",
    "ToolCallDetails",
    "TreeNode",
    "UsageDelta",
    "UsageLimit",
    "UsageTotals",
]
