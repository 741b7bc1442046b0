"""
snapshot.py – freeze a paper's live questions at attempt start.

Only option text is copied.  The correctness flags are read once to find the
first correct option and are then discarded, so nothing in the snapshot
refers back to the live Question rows.
"""

import logging

from content import Paper
from errors import EmptyPaperError
from models import QuestionSnapshot

logger = logging.getLogger(__name__)


def build_snapshot(paper: Paper) -> list[QuestionSnapshot]:
    if not paper.questions:
        raise EmptyPaperError(paper.id)

    snapshot = []
    for question in paper.questions:
        correct_index = next(
            (idx for idx, opt in enumerate(question.options) if opt.is_correct), -1
        )
        if correct_index == -1:
            logger.warning(
                "Question %s on paper %s has no option marked correct",
                question.id, paper.id,
            )
        snapshot.append(
            QuestionSnapshot(
                question_id=question.id,
                text=question.text,
                options=tuple(opt.option_text for opt in question.options),
                correct_index=correct_index,
            )
        )
    return snapshot
