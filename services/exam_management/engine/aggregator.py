# services/exam_management/engine/aggregator.py
"""
Turns raw paper marks into a subject total, a grade and a class position.

total = sum(marks * percentage_weight / 100) over the subject's papers,
rounded to 2 decimal places. Absent students are not scored: their total is
0, their grade is ABS and they take no position.
"""

import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from services.exam_management.engine.errors import IncompleteEntry, MarkOutOfRange, UnknownPaper
from services.exam_management.engine.grading import validate_bands
from services.exam_management.engine.records import (
    ABSENT_GRADE,
    ComputedResult,
    GradeBand,
    PaperConfig,
    ResultRecord,
    SubjectConfig,
)


def validate_marks(paper_marks: Mapping[int, Optional[float]], papers: Sequence[PaperConfig]) -> None:
    """Every configured paper needs a mark within [0, paper.marks]."""
    known = {paper.paper_number for paper in papers}
    for paper_number in paper_marks:
        if paper_number not in known:
            raise UnknownPaper(f"Paper {paper_number} is not configured for this subject", paper_number)

    for paper in papers:
        mark = paper_marks.get(paper.paper_number)
        if mark is None:
            raise IncompleteEntry(f"Missing mark for {paper.paper_name}", paper.paper_number)
        if isinstance(mark, bool) or not isinstance(mark, (int, float)) or not math.isfinite(mark):
            raise IncompleteEntry(f"Mark for {paper.paper_name} is not a number", paper.paper_number)
        if mark < 0 or mark > paper.marks:
            raise MarkOutOfRange(
                f"Mark {mark} for {paper.paper_name} must be between 0 and {paper.marks}",
                paper.paper_number,
            )


def compute_total(paper_marks: Mapping[int, Optional[float]], papers: Sequence[PaperConfig]) -> float:
    total = 0.0
    for paper in papers:
        mark = paper_marks.get(paper.paper_number)
        if mark is None:
            raise IncompleteEntry(f"Missing mark for {paper.paper_name}", paper.paper_number)
        total += mark * paper.percentage_weight / 100
    return round(total, 2)


def grade_for(total: float, bands: Sequence[GradeBand]) -> GradeBand:
    """Highest band whose lower bound the total reaches.

    Bands are lower-bound inclusive, so a total sitting exactly on a
    boundary resolves to the higher band.
    """
    ordered = validate_bands(bands)
    for band in reversed(ordered):
        if total >= band.lower:
            return band
    return ordered[0]


def compute_result(
    setting: SubjectConfig,
    bands: Sequence[GradeBand],
    is_absent: bool,
    paper_marks: Mapping[int, Optional[float]],
) -> ComputedResult:
    papers = setting.effective_papers()

    if is_absent:
        return ComputedResult(
            is_absent=True,
            paper_marks={paper.paper_number: None for paper in papers},
            total_marks=0.0,
            grade=ABSENT_GRADE,
            points=0,
        )

    validate_marks(paper_marks, papers)
    total = compute_total(paper_marks, papers)
    band = grade_for(total, bands)
    return ComputedResult(
        is_absent=False,
        paper_marks={paper.paper_number: float(paper_marks[paper.paper_number]) for paper in papers},
        total_marks=total,
        grade=band.label,
        points=band.points,
    )


def rank_positions(results: Iterable[ResultRecord]) -> Dict[object, Optional[int]]:
    """Competition ranking (1, 2, 2, 4) of present students by total."""
    positions: Dict[object, Optional[int]] = {}
    present: List[ResultRecord] = []
    for result in results:
        if result.is_absent or result.total_marks is None:
            positions[result.id] = None
        else:
            present.append(result)

    present.sort(key=lambda result: result.total_marks, reverse=True)
    previous_total = None
    previous_position = 0
    for index, result in enumerate(present, start=1):
        if result.total_marks != previous_total:
            previous_position = index
            previous_total = result.total_marks
        positions[result.id] = previous_position
    return positions


def subject_statistics(results: Iterable[ResultRecord], pass_mark: float) -> dict:
    results = list(results)
    totals = [
        result.total_marks
        for result in results
        if not result.is_absent and result.total_marks is not None
    ]
    absent = sum(1 for result in results if result.is_absent)

    distribution: Dict[str, int] = {}
    for result in results:
        if result.grade:
            distribution[result.grade] = distribution.get(result.grade, 0) + 1

    if not totals:
        return {
            "students_attempted": 0,
            "absent": absent,
            "highest": None,
            "lowest": None,
            "average": None,
            "pass_rate": None,
            "grade_distribution": distribution,
        }

    passed = sum(1 for total in totals if total >= pass_mark)
    return {
        "students_attempted": len(totals),
        "absent": absent,
        "highest": max(totals),
        "lowest": min(totals),
        "average": round(sum(totals) / len(totals), 2),
        "pass_rate": round(passed * 100 / len(totals), 2),
        "grade_distribution": distribution,
    }
