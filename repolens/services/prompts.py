"""Prompt text for the review and question pipelines."""
from dataclasses import dataclass

from repolens.services.github import FileContent

MAX_ISSUES_PER_GROUP = 4
QUESTION_COUNT = 5


@dataclass(frozen=True)
class CategoryGroup:
    name: str
    web: dict[str, tuple[str, ...]]
    python: dict[str, tuple[str, ...]]
    critical_patterns: tuple[str, ...]

    def checklist(self, project_type: str) -> dict[str, tuple[str, ...]]:
        return self.python if project_type == "python" else self.web

    def categories(self, project_type: str) -> list[str]:
        return list(self.checklist(project_type))


CATEGORY_GROUPS: tuple[CategoryGroup, ...] = (
    CategoryGroup(
        name="Architecture and State",
        web={
            "Architecture & Component Design": (
                "Identify components longer than 200 lines that should be split",
                "Flag components with more than 3 levels of prop drilling",
                "Check for proper separation of concerns (business logic, UI, data fetching)",
                "Verify proper use of React Server Components vs Client Components",
                "Ensure components follow the Single Responsibility Principle",
                "Check for proper error boundary implementation",
                "Identify missed opportunities for custom hooks",
                "Flag improper component composition patterns",
            ),
            "State Management & Data Flow": (
                "Identify redundant state that could be derived",
                "Flag components with > 5 useState calls that need useReducer or a custom hook",
                "Check for proper global state management (Context, Zustand, etc.)",
                "Flag improper state initialization and updates",
                "Check for proper use of useMemo and useCallback",
                "Identify unnecessary re-renders",
                "Flag improper state mutation patterns",
            ),
        },
        python={
            "Architecture & Module Design": (
                "Identify modules longer than 200 lines that should be split",
                "Flag modules with excessive dependencies",
                "Check for proper separation of concerns (business logic, data access, API endpoints)",
                "Verify proper use of dependency injection and service patterns",
                "Ensure modules follow the Single Responsibility Principle",
                "Check for proper exception handling",
                "Identify missed opportunities for abstract base classes or mixins",
            ),
            "State & Data Management": (
                "Identify improper global state usage",
                "Flag modules with excessive class attributes",
                "Check for proper database connection management",
                "Flag improper state mutation patterns",
                "Check for proper use of caching",
                "Identify unnecessary database queries",
                "Flag improper session management",
            ),
        },
        critical_patterns=(
            "Components/Modules > 200 lines",
            "> 5 useState hooks in one component",
            "Direct DOM manipulation",
            "Improper state management patterns",
            "Missing error boundaries",
        ),
    ),
    CategoryGroup(
        name="Performance and Data",
        web={
            "Performance Optimization": (
                "Check for missing React.memo() on expensive renders",
                "Identify unoptimized re-renders due to object/array literals",
                "Flag improper use of useEffect dependencies",
                "Check for missing Suspense boundaries",
                "Identify missed opportunities for code splitting",
                "Flag improper image optimization",
                "Identify unnecessary client-side JavaScript",
            ),
            "Data Fetching & API Integration": (
                "Flag direct useEffect data fetching without proper tools",
                "Check for missing loading/error states",
                "Identify improper error handling in data fetching",
                "Flag missing request cancellation",
                "Identify improper caching strategies",
                "Flag missing retry logic for failed requests",
                "Check for proper API route protection",
            ),
        },
        python={
            "Performance Optimization": (
                "Check for N+1 query problems",
                "Identify unoptimized database queries",
                "Check for missing database indexes",
                "Identify missed opportunities for caching",
                "Flag improper async/await usage",
                "Check for proper batch processing",
                "Identify unnecessary memory usage",
            ),
            "API & Service Integration": (
                "Flag improper HTTP client usage",
                "Check for missing request timeouts",
                "Identify improper error handling in API calls",
                "Flag missing request validation",
                "Check for proper rate limiting",
                "Identify improper authentication handling",
            ),
        },
        critical_patterns=(
            "Improper useEffect dependencies",
            "Missing loading states",
            "Unhandled promise rejections",
            "Missing request timeouts",
            "N+1 query problems",
            "Improper caching strategies",
        ),
    ),
    CategoryGroup(
        name="Types and Security",
        web={
            "TypeScript & Type Safety": (
                "Identify any 'any' types that should be properly typed",
                "Flag improper use of type assertions",
                "Check for missing interface definitions",
                "Flag missing type guards",
                "Check for proper discriminated unions",
                "Identify improper null checking",
            ),
            "Security & Best Practices": (
                "Identify exposed API keys or sensitive data",
                "Flag missing input sanitization",
                "Check for proper CORS configuration",
                "Identify XSS vulnerabilities",
                "Flag missing authentication checks",
                "Identify improper error exposure",
                "Flag hardcoded credentials or URLs",
            ),
        },
        python={
            "Type Safety & Type Hints": (
                "Identify missing type hints",
                "Flag improper use of Any types",
                "Check for missing Protocol implementations",
                "Check for proper Optional usage",
                "Identify improper Union types",
            ),
            "Security & Best Practices": (
                "Identify exposed API keys or sensitive data",
                "Flag missing input validation",
                "Check for proper CORS configuration",
                "Identify SQL injection vulnerabilities",
                "Flag missing authentication checks",
                "Identify improper error exposure",
                "Flag hardcoded credentials",
            ),
        },
        critical_patterns=(
            "Exposed sensitive data",
            "Improper type safety",
            "XSS vulnerabilities",
            "SQL injection risks",
            "Hardcoded credentials",
            "Missing input validation",
        ),
    ),
    CategoryGroup(
        name="Testing and Style",
        web={
            "Testing & Error Handling": (
                "Flag missing unit tests for critical components",
                "Check for missing integration tests",
                "Flag improper error logging",
                "Check for proper mocking patterns",
                "Identify missing edge case handling",
            ),
            "Code Style & Maintainability": (
                "Check for consistent naming conventions",
                "Identify duplicated code",
                "Flag complex conditional rendering",
                "Identify magic numbers/strings",
                "Flag improper file organization",
                "Identify overly complex functions (> 20 lines)",
            ),
        },
        python={
            "Testing & Error Handling": (
                "Flag missing unit tests",
                "Identify improper pytest fixture usage",
                "Check for missing integration tests",
                "Flag improper error logging",
                "Check for proper mock usage",
                "Identify missing edge case handling",
            ),
            "Code Style & Maintainability": (
                "Check for PEP 8 compliance",
                "Identify duplicated code",
                "Flag complex conditional logic",
                "Check for proper docstring usage",
                "Identify magic numbers/strings",
                "Identify overly complex functions (> 20 lines)",
            ),
        },
        critical_patterns=(
            "Missing proper testing",
            "Improper error handling",
            "Duplicated code",
            "Inconsistent code style",
            "Improper error logging",
        ),
    ),
)

_WEB_EXPERTISE = "React, Next.js, TypeScript, and modern web development"
_PYTHON_EXPERTISE = "Python, Django, Flask, FastAPI, and modern backend development"

GROUP_PROMPT = """You are a Principal Software Engineer with deep expertise in {expertise}. Your role is to perform thorough code reviews and identify issues in GitHub repositories.

You will analyze ONLY the following categories. Do not look for issues outside these categories:

{categories}

CRITICAL PATTERNS TO FLAG:
{critical_patterns}

- Keep in mind that empty env variables in a .env.example file are not an issue.

IMPORTANT: You must respond with a valid JSON object following this exact schema:

{{
  "issues": [
    {{
      "category": string, // Must be one of: {category_names}
      "severity": "Critical" | "High" | "Medium" | "Low",
      "fileLocation": string,
      "codeSnippet": string,
      "explanation": string,
      "recommendation": string,
      "codeExample": string,
      "impact": string
    }}
  ]
}}

ONLY GENERATE {max_issues} ISSUES MAX. DO NOT GENERATE MORE THAN {max_issues} ISSUES.
"""

SUMMARY_PROMPT = """You are a Principal Software Engineer summarising a code review.
You are given the list of issues found in a repository. Write a short overall assessment of
the codebase in 4 sentences: what is good, what is bad, and what to fix first.

Respond with a valid JSON object: {"overallFeedback": string}
"""

FALLBACK_FEEDBACK = (
    "The automated review found the issues listed below. "
    "An overall summary could not be generated for this run."
)

QUESTIONS_PROMPT = """You are a Principal Software Engineer. You are given a codebase and you need to generate {count} specific questions that are relevant to the codebase. The questions should be designed to test the developer's understanding of the codebase and to help them improve their skills.

The questions should be in the following JSON format:
{{
  "questions": [
    {{"question": "Can you explain why you chose this framework for the project?"}},
    {{"question": "What are the tradeoffs of your approach to fetching data?"}},
    {{"question": "What improvements would you make to the current architecture if you had more time?"}}
  ]
}}

Generate exactly {count} questions.
"""


def _render_checklist(checklist: dict[str, tuple[str, ...]]) -> str:
    blocks = []
    for n, (category, items) in enumerate(checklist.items(), start=1):
        lines = [f"{n}. {category}"] + [f"   - {item}" for item in items]
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def prompt_for_group(group: CategoryGroup, project_type: str) -> str:
    """System prompt for one category group; unknown projects get the web checklist."""
    checklist = group.checklist(project_type)
    return GROUP_PROMPT.format(
        expertise=_PYTHON_EXPERTISE if project_type == "python" else _WEB_EXPERTISE,
        categories=_render_checklist(checklist),
        critical_patterns="\n".join(f"- {p}" for p in group.critical_patterns),
        category_names=", ".join(f'"{c}"' for c in checklist),
        max_issues=MAX_ISSUES_PER_GROUP,
    )


def questions_prompt(count: int = QUESTION_COUNT) -> str:
    return QUESTIONS_PROMPT.format(count=count)


def format_file(file: FileContent) -> str:
    return f"File: {file.path}\n```\n{file.content}\n```\n"


def format_files(files: list[FileContent]) -> str:
    return "\n".join(format_file(f) for f in files)
