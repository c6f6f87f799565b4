from datetime import datetime, timezone

from models.newsletter import Newsletter, NewsletterArticle
from reports import render_newsletter_markdown, save_newsletter_report

NEWSLETTER = Newsletter(
    intro="Welcome back.",
    articles=[
        NewsletterArticle(
            title="Rust 1.80 released",
            url="https://blog.example.com/rust-180",
            summary="A big release.",
            reason="Core interest",
            source="blog.example.com",
        ),
    ],
    generated_at=datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc),
)


def test_render_markdown():
    md = render_newsletter_markdown(NEWSLETTER, ["rust", "compilers"])

    assert md.startswith("# Your Newsletter")
    assert "**Interests:** rust, compilers" in md
    assert "Welcome back." in md
    assert "## 1. [Rust 1.80 released](https://blog.example.com/rust-180)" in md
    assert "> Why: Core interest" in md


def test_render_empty_newsletter():
    empty = Newsletter(intro="Hi.", articles=[], generated_at=NEWSLETTER.generated_at)
    assert "No articles matched" in render_newsletter_markdown(empty)


def test_save_report(tmp_path):
    path = save_newsletter_report(NEWSLETTER, tmp_path / "reports", ["Rust", "Web Dev"])

    assert path is not None
    assert path.name == "20240501_083000_rust_web_dev_newsletter.md"
    assert "Rust 1.80 released" in path.read_text(encoding="utf-8")


def test_save_report_failure_returns_none(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")

    assert save_newsletter_report(NEWSLETTER, blocker / "reports") is None
