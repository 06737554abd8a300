"""Tools package for gitbuddy."""

from gitbuddy.tools.feedback import RequestFeedbackTool
from gitbuddy.tools.files import GrepDirectoryTool, GrepFileTool, ListDirectoryTool, ListFilesTool, ReadFileTool
from gitbuddy.tools.git_tools import (
    GitDiffBranchesTool,
    GitDiffCachedTool,
    GitLogRangeTool,
    GitLogTool,
    GitShowTool,
    GitStatusTool,
)
from gitbuddy.tools.plan_tools import TransitionPhaseTool, UpdateExecutionPlanTool
from gitbuddy.tools.registry import (
    DispatchResult,
    Tool,
    ToolContext,
    ToolDispatcher,
    ToolRegistry,
    ToolResult,
)
from gitbuddy.tools.submit import (
    SubmitCommitTool,
    SubmitIssueReportTool,
    SubmitPRTool,
    SubmitReviewTool,
    SubmitWorkReportTool,
)

__all__ = [
    "DispatchResult",
    "Tool",
    "ToolContext",
    "ToolDispatcher",
    "ToolRegistry",
    "ToolResult",
    "ReadFileTool",
    "ListDirectoryTool",
    "ListFilesTool",
    "GrepFileTool",
    "GrepDirectoryTool",
    "GitStatusTool",
    "GitDiffCachedTool",
    "GitLogTool",
    "GitShowTool",
    "GitLogRangeTool",
    "GitDiffBranchesTool",
    "UpdateExecutionPlanTool",
    "TransitionPhaseTool",
    "RequestFeedbackTool",
    "SubmitCommitTool",
    "SubmitReviewTool",
    "SubmitIssueReportTool",
    "SubmitWorkReportTool",
    "SubmitPRTool",
]
