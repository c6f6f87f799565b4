"""Markdown export for generated newsletters.

Used by the CLI to keep a readable copy of each newsletter on disk. Saving
fails gracefully: errors are logged and None is returned, the newsletter
itself is unaffected.
"""

import logging
import re
from datetime import datetime
from pathlib import Path

from models.newsletter import Newsletter

logger = logging.getLogger(__name__)


def _slug(text: str, max_length: int = 40) -> str:
    """Lowercase filename fragment made of ASCII words joined by '_'."""
    s = re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")
    if len(s) > max_length:
        s = s[:max_length]
        cut = s.rfind("_")
        if cut > max_length // 2:
            s = s[:cut]
    return s.strip("_")


def _build_report_filename(generated_at: datetime, interests: list[str]) -> str:
    timestamp = generated_at.strftime("%Y%m%d_%H%M%S")
    tag = _slug("_".join(interests))
    if tag:
        return f"{timestamp}_{tag}_newsletter.md"
    return f"{timestamp}_newsletter.md"


def render_newsletter_markdown(newsletter: Newsletter, interests: list[str] | None = None) -> str:
    """Render a newsletter as a Markdown document."""
    generated = newsletter.generated_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()

    lines = [
        "# Your Newsletter",
        "",
        f"**Generated:** {generated}",
    ]
    if interests:
        lines.append(f"**Interests:** {', '.join(interests)}")
    lines.extend(["", newsletter.intro, "", "---"])

    if not newsletter.articles:
        lines.extend(["", "_No articles matched your interests this time._"])

    for i, article in enumerate(newsletter.articles, 1):
        lines.extend([
            "",
            f"## {i}. [{article.title}]({article.url})",
            "",
            f"*{article.source}*",
            "",
            article.summary,
        ])
        if article.reason:
            lines.extend(["", f"> Why: {article.reason}"])

    lines.append("")
    return "\n".join(lines)


def save_newsletter_report(
    newsletter: Newsletter,
    reports_dir: Path,
    interests: list[str] | None = None,
) -> Path | None:
    """Save a newsletter as Markdown under ``reports_dir``.

    Returns:
        Path of the written file, or None if saving failed
    """
    try:
        reports_dir.mkdir(parents=True, exist_ok=True)
        filepath = reports_dir / _build_report_filename(newsletter.generated_at, interests or [])
        filepath.write_text(render_newsletter_markdown(newsletter, interests), encoding="utf-8")
        logger.info("Report saved | file=%s articles=%d", filepath.name, len(newsletter.articles))
        return filepath
    except Exception as e:
        logger.error("Report save failed: %s", e, exc_info=True)
        return None
