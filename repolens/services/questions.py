import asyncio
import logging

from repolens.core.errors import ExternalAnalysisError
from repolens.models.job import utc_now_iso
from repolens.schemas.analysis import QuestionsResult
from repolens.services.github import FileContent
from repolens.services.llm import LLMClient
from repolens.services.prompts import QUESTION_COUNT, format_files, questions_prompt

logger = logging.getLogger(__name__)

CODE_EXTENSIONS = (
    ".js", ".jsx", ".ts", ".tsx", ".py", ".java", ".go", ".rb", ".php", ".c", ".cpp", ".h", ".cs",
)
MAX_QUESTION_FILE_CHARS = 100_000


def select_code_files(files: list[FileContent]) -> list[FileContent]:
    return [
        f for f in files
        if "node_modules" not in f.path
        and ".git/" not in f.path
        and f.content
        and len(f.content) < MAX_QUESTION_FILE_CHARS
        and f.path.endswith(CODE_EXTENSIONS)
    ]


def _question_text(item) -> str:
    if isinstance(item, dict):
        item = item.get("question")
    return item.strip() if isinstance(item, str) else ""


async def generate_questions(files: list[FileContent], repository_url: str, llm: LLMClient) -> QuestionsResult:
    code_files = select_code_files(files)
    logger.info("Generating questions from %s of %s files", len(code_files), len(files))
    if not code_files:
        raise ExternalAnalysisError("No source code files found to generate questions from")

    data = await asyncio.to_thread(llm.complete_json, [
        {"role": "system", "content": questions_prompt()},
        {"role": "user", "content": f"Here is the code from the repository:\n\n{format_files(code_files)}"},
    ])
    raw = data.get("questions")
    if not isinstance(raw, list):
        raise ExternalAnalysisError("Malformed questions response")
    questions = [q for q in (_question_text(item) for item in raw) if q]
    if not questions:
        raise ExternalAnalysisError("LLM returned no questions")
    return QuestionsResult(
        questions=questions[:QUESTION_COUNT],
        repository_url=repository_url,
        generated_at=utc_now_iso(),
    )
