"""Unit tests for tasks.md parsing and completion marking."""

import pytest

from speckit_autopilot.files import FileAccessError
from speckit_autopilot.speckit_logging import observability_hooks, performance_monitor
from speckit_autopilot.tasks import (
    PhaseHeading,
    TaskLine,
    classify_line,
    count_tasks,
    incomplete_tasks,
    incomplete_tasks_file,
    list_phases,
    mark_task_complete,
    mark_task_complete_file,
    parse_tasks,
    parse_tasks_file,
)


EXAMPLE_CHECKLIST = """# Tasks
## Phase 1: Setup
- [ ] T001 Initial setup
- [X] T002 Already done
## Phase 2: Core
- [ ] T003 [P] [US1] Build core
"""


class TestClassifyLine:
    """Test cases for per-line classification."""

    def test_phase_heading(self):
        assert classify_line("## Phase 1: Setup") == PhaseHeading(title="Setup")

    def test_phase_heading_without_colon(self):
        assert classify_line("## Phase 3 User Stories") == PhaseHeading(title="User Stories")

    def test_phase_title_keeps_inner_colons(self):
        assert classify_line("## Phase 2: Core: API layer  ") == PhaseHeading(title="Core: API layer")

    def test_task_line(self):
        assert classify_line("- [ ] T003 [P] [US1] Build core") == TaskLine(
            task_id="T003",
            completed=False,
            description="Build core",
            parallel=True,
            story="US1",
        )

    @pytest.mark.parametrize("line", [
        "",
        "# Tasks",
        "### Phase 1: Setup",
        "## Setup",
        "- [ ] Write docs",
        "- [ ] t001 lowercase id",
        "- [-] T001 unknown marker",
        "* [ ] T001 wrong bullet",
        "- [ ] T001",
        "  - [ ] T001 indented",
    ])
    def test_other_lines_are_ignored(self, line):
        assert classify_line(line) is None


class TestParseTasks:
    """Test cases for parse_tasks."""

    def test_example_checklist(self):
        tasks = parse_tasks(EXAMPLE_CHECKLIST)

        assert [t.task_id for t in tasks] == ["T001", "T002", "T003"]
        assert [t.completed for t in tasks] == [False, True, False]
        assert [t.phase for t in tasks] == ["Setup", "Setup", "Core"]
        assert tasks[0].description == "Initial setup"
        assert tasks[0].parallel is False
        assert tasks[0].story is None
        assert tasks[2].parallel is True
        assert tasks[2].story == "US1"
        assert tasks[2].description == "Build core"

    def test_empty_input(self):
        assert parse_tasks("") == []

    def test_task_before_any_phase_has_empty_phase(self):
        tasks = parse_tasks("- [ ] T001 Orphan\n## Phase 1: Setup\n- [ ] T002 Child\n")

        assert tasks[0].phase == ""
        assert tasks[1].phase == "Setup"

    def test_nearest_phase_wins(self):
        content = "## Phase 1: First\n## Phase 2: Second\n- [ ] T001 Task\n"

        assert parse_tasks(content)[0].phase == "Second"

    def test_order_preserved(self):
        content = "\n".join(f"- [ ] T{n:03d} Task {n}" for n in (5, 1, 9, 2))

        assert [t.task_id for t in parse_tasks(content)] == ["T005", "T001", "T009", "T002"]

    def test_lowercase_x_is_completed(self):
        assert parse_tasks("- [x] T001 Done")[0].completed is True

    def test_parallel_tag_anywhere_on_line(self):
        tasks = parse_tasks("- [ ] T001 [US2] Build [P] thing")

        assert tasks[0].parallel is True
        assert tasks[0].story == "US2"
        assert tasks[0].description == "Build [P] thing"

    def test_story_without_parallel(self):
        task = parse_tasks("- [ ] T004 [US3] Wire UI")[0]

        assert task.parallel is False
        assert task.story == "US3"
        assert task.description == "Wire UI"

    def test_duplicates_are_kept(self):
        tasks = parse_tasks("- [ ] T001 First\n- [x] T001 Second\n")

        assert [(t.task_id, t.completed) for t in tasks] == [("T001", False), ("T001", True)]

    def test_crlf_line_endings(self):
        tasks = parse_tasks("## Phase 1: Setup\r\n- [ ] T001 Setup repo\r\n")

        assert tasks[0].phase == "Setup"
        assert tasks[0].description == "Setup repo"

    def test_deterministic(self):
        assert parse_tasks(EXAMPLE_CHECKLIST) == parse_tasks(EXAMPLE_CHECKLIST)

    def test_incomplete_tasks(self):
        assert [t.task_id for t in incomplete_tasks(EXAMPLE_CHECKLIST)] == ["T001", "T003"]
        assert [t.task_id for t in incomplete_tasks(parse_tasks(EXAMPLE_CHECKLIST))] == ["T001", "T003"]

    def test_count_and_phases(self):
        assert count_tasks(EXAMPLE_CHECKLIST) == 3
        assert list_phases(EXAMPLE_CHECKLIST) == ["Setup", "Core"]


class TestMarkTaskComplete:
    """Test cases for the in-memory mutator."""

    def test_marks_only_target_checkbox(self):
        result = mark_task_complete(EXAMPLE_CHECKLIST, "T001")

        assert result.matched is True
        assert result.changed is True
        assert result.content == EXAMPLE_CHECKLIST.replace("- [ ] T001", "- [X] T001")

    def test_reparse_after_mark(self):
        content = mark_task_complete(EXAMPLE_CHECKLIST, "T001").content
        tasks = parse_tasks(content)

        assert [t.completed for t in tasks] == [True, True, False]
        assert [t.task_id for t in incomplete_tasks(tasks)] == ["T003"]
        assert tasks[2].parallel is True and tasks[2].story == "US1"

    def test_mutation_locality(self):
        content = "- [ ] T001 One\n- [ ] T002 [P] [US1] Two\n- [x] T003 Three\n"
        before = content.split("\n")

        after = mark_task_complete(content, "T002").content.split("\n")

        assert after[0] == before[0]
        assert after[2] == before[2]
        assert after[1] == "- [X] T002 [P] [US1] Two"

    def test_already_complete_is_left_untouched(self):
        content = "- [x] T001 Done\n"

        result = mark_task_complete(content, "T001")

        assert result.content == content
        assert result.matched is True
        assert result.changed is False

    def test_idempotent(self):
        once = mark_task_complete(EXAMPLE_CHECKLIST, "T003").content
        twice = mark_task_complete(once, "T003").content

        assert twice == once

    def test_unknown_id_is_silent_noop(self):
        result = mark_task_complete(EXAMPLE_CHECKLIST, "T999")

        assert result.content == EXAMPLE_CHECKLIST
        assert result.matched is False
        assert result.changed is False

    def test_only_first_duplicate_changes(self):
        content = "- [ ] T001 First\n- [ ] T001 Second\n"

        result = mark_task_complete(content, "T001")

        assert result.content == "- [X] T001 First\n- [ ] T001 Second\n"

    def test_id_prefix_does_not_match_longer_id(self):
        content = "- [ ] T0010 Longer id\n- [ ] T001 Target\n"

        result = mark_task_complete(content, "T001")

        assert result.content == "- [ ] T0010 Longer id\n- [X] T001 Target\n"

    def test_spacing_preserved(self):
        content = "-   [ ]   T001    spaced   out  "

        assert mark_task_complete(content, "T001").content == "-   [X]   T001    spaced   out  "

    def test_surrounding_whitespace_in_id_is_ignored(self):
        assert mark_task_complete("- [ ] T001 Task", "  T001 ").changed is True

    @pytest.mark.parametrize("task_id", ["", "   ", None])
    def test_empty_id_rejected(self, task_id):
        with pytest.raises(ValueError, match="Task ID is required"):
            mark_task_complete(EXAMPLE_CHECKLIST, task_id)


class TestFileOperations:
    """Test cases for the file-backed parser and mutator."""

    def test_parse_tasks_file(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_text(EXAMPLE_CHECKLIST, encoding="utf-8")

        assert [t.task_id for t in parse_tasks_file(path)] == ["T001", "T002", "T003"]
        assert [t.task_id for t in incomplete_tasks_file(path)] == ["T001", "T003"]

    def test_parse_missing_file_raises(self, tmp_path):
        path = tmp_path / "tasks.md"

        with pytest.raises(FileAccessError, match="Failed to read file") as excinfo:
            parse_tasks_file(path)

        assert excinfo.value.path == path
        assert isinstance(excinfo.value.__cause__, FileNotFoundError)

    def test_mark_file_round_trip(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_text(EXAMPLE_CHECKLIST, encoding="utf-8")

        result = mark_task_complete_file(path, "T001")
        first = path.read_bytes()
        mark_task_complete_file(path, "T001")

        assert result.changed is True
        assert path.read_bytes() == first
        assert parse_tasks_file(path)[0].completed is True

    def test_mark_file_preserves_crlf(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_bytes(b"- [ ] T001 One\r\n- [ ] T002 Two\r\n")

        mark_task_complete_file(path, "T002")

        assert path.read_bytes() == b"- [ ] T001 One\r\n- [X] T002 Two\r\n"

    def test_unmatched_id_does_not_rewrite(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_text(EXAMPLE_CHECKLIST, encoding="utf-8")
        mtime = path.stat().st_mtime_ns

        result = mark_task_complete_file(path, "T404")

        assert result.matched is False
        assert path.stat().st_mtime_ns == mtime
        assert path.read_text(encoding="utf-8") == EXAMPLE_CHECKLIST

    def test_empty_id_rejected_before_io(self, tmp_path):
        with pytest.raises(ValueError, match="Task ID is required"):
            mark_task_complete_file(tmp_path / "missing.md", " ")

    def test_missing_path_rejected(self):
        with pytest.raises(ValueError, match="File path is required"):
            parse_tasks_file("")

    def test_parse_invalid_utf8_raises(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_bytes(b"- [ ] T001 caf\xe9\n")

        with pytest.raises(FileAccessError, match="Failed to read file"):
            parse_tasks_file(path)


class TestMarkTaskCompleteObservability:
    """Test cases for events and metrics emitted when marking from a file."""

    @pytest.fixture(autouse=True)
    def clear_metrics(self):
        performance_monitor.clear()
        yield
        performance_monitor.clear()

    @pytest.fixture
    def task_events(self):
        received = []

        def hook(**data):
            received.append(data)

        observability_hooks.register_hook("task_updated", hook)
        yield received
        observability_hooks.unregister_hook("task_updated", hook)

    def test_unknown_id_is_reported_incomplete(self, tmp_path, task_events):
        path = tmp_path / "tasks.md"
        path.write_text(EXAMPLE_CHECKLIST, encoding="utf-8")

        mark_task_complete_file(path, "T404")

        assert task_events[0]["task_id"] == "T404"
        assert task_events[0]["completed"] is False
        assert task_events[0]["changed"] is False

    def test_marked_id_is_reported_complete(self, tmp_path, task_events):
        path = tmp_path / "tasks.md"
        path.write_text(EXAMPLE_CHECKLIST, encoding="utf-8")

        mark_task_complete_file(path, "T001")

        assert task_events[0]["completed"] is True
        assert task_events[0]["changed"] is True

    def test_success_records_metric(self, tmp_path):
        path = tmp_path / "tasks.md"
        path.write_text(EXAMPLE_CHECKLIST, encoding="utf-8")

        mark_task_complete_file(path, "T001")

        metrics = performance_monitor.get_metrics("mark_task_complete_duration")["mark_task_complete_duration"]
        assert metrics[0]["tags"] == {"status": "success"}

    def test_missing_file_records_error_metric(self, tmp_path, task_events):
        with pytest.raises(FileAccessError):
            mark_task_complete_file(tmp_path / "missing.md", "T001")

        metrics = performance_monitor.get_metrics("mark_task_complete_duration")["mark_task_complete_duration"]
        assert metrics[0]["tags"] == {"status": "error", "error_type": "FileAccessError"}
        assert task_events == []
