"""
Code review pipeline.

The checklist is split into category groups; each group is reviewed by its
own LLM call, all groups concurrently, each capped at a few issues. A last
call turns the collected issues into an overall paragraph, and a failure of
that call alone falls back to a fixed text instead of failing the review.
"""
import asyncio
import json
import logging
import re

from pydantic import ValidationError

from repolens.core.errors import ExternalAnalysisError
from repolens.schemas.analysis import AnalysisResult, Issue
from repolens.services.github import FileContent
from repolens.services.llm import LLMClient
from repolens.services.project_type import determine_project_type
from repolens.services.prompts import (
    CATEGORY_GROUPS,
    FALLBACK_FEEDBACK,
    MAX_ISSUES_PER_GROUP,
    SUMMARY_PROMPT,
    CategoryGroup,
    format_files,
    prompt_for_group,
)

logger = logging.getLogger(__name__)


def _normalize_category(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", name.casefold().replace("&", "and"))


def review_group(llm: LLMClient, group: CategoryGroup, project_type: str, code: str) -> list[Issue]:
    """One LLM call for one category group; off-checklist and surplus issues are dropped."""
    data = llm.complete_json([
        {"role": "system", "content": prompt_for_group(group, project_type)},
        {"role": "user", "content": f"Here is the code from the repository:\n\n{code}"},
    ])
    raw_issues = data.get("issues")
    if not isinstance(raw_issues, list):
        raise ExternalAnalysisError(f"Malformed review response for {group.name}")

    allowed = {_normalize_category(c): c for c in group.categories(project_type)}
    issues: list[Issue] = []
    for item in raw_issues:
        try:
            issue = Issue.model_validate(item)
        except ValidationError as e:
            logger.warning("Skipping malformed issue from %s: %s", group.name, e.errors())
            continue
        canonical = allowed.get(_normalize_category(issue.category))
        if canonical is None:
            logger.warning("Dropping issue outside %s: category=%r", group.name, issue.category)
            continue
        issues.append(issue.model_copy(update={"category": canonical}))
        if len(issues) >= MAX_ISSUES_PER_GROUP:
            break
    return issues


def summarize_issues(llm: LLMClient, issues: list[Issue]) -> str:
    try:
        data = llm.complete_json([
            {"role": "system", "content": SUMMARY_PROMPT},
            {"role": "user", "content": json.dumps([i.to_wire() for i in issues], indent=2)},
        ])
    except ExternalAnalysisError as e:
        logger.warning("Overall feedback failed, using fallback: %s", e)
        return FALLBACK_FEEDBACK
    feedback = data.get("overallFeedback")
    if isinstance(feedback, str) and feedback.strip():
        return feedback.strip()
    logger.warning("Overall feedback missing from summary response")
    return FALLBACK_FEEDBACK


async def analyze_code(files: list[FileContent], llm: LLMClient) -> AnalysisResult:
    project = determine_project_type(files)
    logger.info(
        "Project type %s (confidence %.2f, indicators %s) for %s files",
        project.type, project.confidence, project.indicators, len(files),
    )
    code = format_files(files)
    per_group = await asyncio.gather(*(
        asyncio.to_thread(review_group, llm, group, project.type, code) for group in CATEGORY_GROUPS
    ))
    issues = [issue for group_issues in per_group for issue in group_issues]
    feedback = await asyncio.to_thread(summarize_issues, llm, issues)
    return AnalysisResult(overall_feedback=feedback, issues=issues)
