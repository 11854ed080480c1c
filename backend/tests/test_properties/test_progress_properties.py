"""Property-based tests for progress reporting and question planning.

Covers:
- Run progress percentage bounds
- Document progress merge (log precedence, no terminal entries)
- Category distribution always sums to the planned total
"""

import uuid

from hypothesis import given, settings
from hypothesis import strategies as st

from backoffice.models.document import DocumentPhase, DocumentStatus
from backoffice.services.documents_progress import (
    DocumentSnapshot,
    ProcessingLogSnapshot,
    merge_processing_status,
)
from backoffice.services.qa.lifecycle import progress_percent
from backoffice.services.qa.run_config import (
    QuestionCategory,
    TestRunConfig,
    calculate_category_distribution,
    calculate_total_questions,
)

# Small id pool so logs and documents overlap often
document_ids = st.sampled_from([uuid.UUID(int=n) for n in range(1, 6)])

log_strategy = st.builds(
    ProcessingLogSnapshot,
    document_id=st.one_of(st.none(), document_ids),
    filename=st.just("log.pdf"),
    phase=st.sampled_from(list(DocumentPhase)),
)

document_strategy = st.builds(
    DocumentSnapshot,
    id=document_ids,
    filename=st.just("doc.pdf"),
    status=st.sampled_from(list(DocumentStatus)),
)

categories_strategy = st.lists(
    st.sampled_from(list(QuestionCategory)), min_size=1, unique=True
)


@given(
    total=st.integers(min_value=1, max_value=10_000),
    data=st.data(),
)
def test_percent_stays_within_bounds(total: int, data: st.DataObject) -> None:
    completed = data.draw(st.integers(min_value=0, max_value=total))

    percent = progress_percent(completed, total)

    assert 0 <= percent <= 100
    assert (percent == 100) == (completed == total)


@given(completed=st.integers(min_value=0, max_value=1_000))
def test_percent_without_planned_questions_is_zero(completed: int) -> None:
    assert progress_percent(completed, 0) == 0


@settings(max_examples=200)
@given(
    logs=st.lists(log_strategy, max_size=10),
    documents=st.lists(document_strategy, max_size=10),
)
def test_merge_properties(
    logs: list[ProcessingLogSnapshot], documents: list[DocumentSnapshot]
) -> None:
    overview = merge_processing_status(logs, documents)
    merged = {entry.document_id: entry for entry in overview.documents}

    # One entry per document, none of them finished
    assert len(merged) == len(overview.documents)
    assert not any(entry.phase.is_terminal for entry in overview.documents)
    assert overview.has_processing == bool(overview.documents)

    first_log = {}
    for log in logs:
        if log.document_id is not None:
            first_log.setdefault(log.document_id, log)

    for document_id, entry in merged.items():
        if document_id in first_log:
            # A logged document always reports its newest log phase
            assert entry.phase == first_log[document_id].phase
            assert entry.filename == "log.pdf"
        else:
            assert entry.phase in (DocumentPhase.UPLOADING, DocumentPhase.PARSING)

    for log in first_log.values():
        if not log.phase.is_terminal:
            assert log.document_id in merged


@given(
    total=st.integers(min_value=0, max_value=5_000),
    categories=categories_strategy,
)
def test_distribution_sums_to_total(total: int, categories: list[QuestionCategory]) -> None:
    distribution = calculate_category_distribution(total, categories)

    assert sum(distribution.values()) == total
    assert set(distribution) == set(categories)
    assert all(count >= 0 for count in distribution.values())


@given(
    min_questions=st.integers(min_value=1, max_value=500),
    per_document=st.integers(min_value=0, max_value=20),
    document_count=st.integers(min_value=0, max_value=200),
)
def test_total_questions_grows_with_documents(
    min_questions: int, per_document: int, document_count: int
) -> None:
    config = TestRunConfig(min_questions=min_questions, questions_per_document=per_document)

    total = calculate_total_questions(config, document_count)

    assert total >= min_questions
    assert calculate_total_questions(config, document_count + 1) == total + per_document
