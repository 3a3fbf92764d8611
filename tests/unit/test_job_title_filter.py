from __future__ import annotations

import pytest

from kestrel.core.traversal import is_plausible_job_title


@pytest.mark.parametrize(
    "title",
    ["Apply", "apply now", "View job", "See details", "Open role", "Dev", "", "    "],
)
def test_action_labels_and_short_text_are_rejected(title: str) -> None:
    assert is_plausible_job_title(title) is False


@pytest.mark.parametrize(
    "title",
    ["Senior Backend Engineer", "Applied Scientist", "Openings Coordinator", "Viewport Performance Engineer"],
)
def test_real_titles_pass(title: str) -> None:
    assert is_plausible_job_title(title) is True


def test_min_length_is_configurable() -> None:
    assert is_plausible_job_title("SRE", min_length=3) is True
    assert is_plausible_job_title("SRE", min_length=5) is False
