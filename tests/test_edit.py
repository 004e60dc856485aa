"""Tests for the edit/view workflow and tagged batches."""

import errno
import os

from emledit.edit import (
    EditMode,
    ResultCode,
    edit_message,
    edit_or_view,
    edit_or_view_one,
    view_message,
)
from emledit.errors import EditorError, WriteError
from emledit.store import Flag, Mailbox, OpenMode, RecordFlags

from conftest import ENVELOPE, FROM_BODY, append_text, make_message, untouched, write_mbox


def emptying(command, path):
    open(path, "wb").close()
    return 0


def forcing_write(command, path):
    """Editor that writes even though the file was made read-only."""
    os.chmod(path, 0o600)
    with open(path, "ab") as f:
        f.write(b"sneaky\n")
    return 0


def failing_launch(command, path):
    raise EditorError(f'Error running "{command}": No such file or directory')


def run_one(mode, box, message, tmpdir, run_editor, **options):
    return edit_or_view_one(mode, box, message, editor="ed", tmpdir=tmpdir, run_editor=run_editor, **options)


class TestEdit:
    def test_hello_world(self, tmp_path, tmpdir_):
        path = tmp_path / "inbox"
        write_mbox(path, make_message("Greeting", "hello\n"))
        with Mailbox(path).open(OpenMode.APPEND) as box:
            original = box.get(0)
            result = run_one(EditMode.EDIT, box, original, tmpdir_, append_text(b"world\n"))

            assert result.code is ResultCode.COMMITTED
            assert result.ok
            assert original.deleted and original.purged and original.read
            _, body = box.get_bytes(result.replacement).split(b"\n\n", 1)
            assert body == b"hello\nworld\n"

            assert box.sync() == 1
            assert len(box) == 1

        with Mailbox(path).open() as box:
            _, body = box.get_bytes(box.get(0)).split(b"\n\n", 1)
            assert body == b"hello\nworld\n"
        assert list(tmpdir_.iterdir()) == []

    def test_editor_gets_surrogate(self, inbox, tmpdir_):
        seen = {}

        def capture(command, path):
            seen["command"] = command
            seen["content"] = path.read_bytes()
            return 0

        run_one(EditMode.EDIT, inbox, inbox.get(1), tmpdir_, capture)
        assert seen["command"] == "ed"
        assert seen["content"] == ENVELOPE + make_message("Second", "two\n")

    def test_not_modified(self, inbox, mbox_path, tmpdir_):
        before = mbox_path.read_bytes()
        message = inbox.get(0)
        result = run_one(EditMode.EDIT, inbox, message, tmpdir_, untouched)
        inbox.close()

        assert result.code is ResultCode.UNCHANGED
        assert result.reason == "Message not modified"
        assert not message.deleted
        assert mbox_path.read_bytes() == before
        assert list(tmpdir_.iterdir()) == []

    def test_editor_exit_status_ignored(self, inbox, tmpdir_):
        def grumpy(command, path):
            with open(path, "ab") as f:
                f.write(b"more\n")
            return 1

        result = run_one(EditMode.EDIT, inbox, inbox.get(0), tmpdir_, grumpy)
        assert result.code is ResultCode.COMMITTED

    def test_editor_launch_failure(self, inbox, mbox_path, tmpdir_):
        before = mbox_path.read_bytes()
        result = run_one(EditMode.EDIT, inbox, inbox.get(0), tmpdir_, failing_launch)
        inbox.close()
        assert result.code is ResultCode.UNCHANGED
        assert mbox_path.read_bytes() == before

    def test_emptied_file(self, inbox, mbox_path, tmpdir_):
        before = mbox_path.read_bytes()
        result = run_one(EditMode.EDIT, inbox, inbox.get(0), tmpdir_, emptying)
        inbox.close()

        assert result.code is ResultCode.UNCHANGED
        assert result.empty
        assert result.ok
        assert result.reason == "Message file is empty"
        assert mbox_path.read_bytes() == before
        assert list(tmpdir_.iterdir()) == []

    def test_untags_replaced_message(self, inbox, tmpdir_):
        message = inbox.get(0)
        inbox.set_flag(message, Flag.TAGGED)
        run_one(EditMode.EDIT, inbox, message, tmpdir_, append_text(b"x\n"))
        assert not message.tagged

    def test_keeps_tag_without_delete_untag(self, inbox, tmpdir_):
        message = inbox.get(0)
        inbox.set_flag(message, Flag.TAGGED)
        run_one(EditMode.EDIT, inbox, message, tmpdir_, append_text(b"x\n"), delete_untag=False)
        assert message.tagged
        assert message.deleted

    def test_maildir(self, maildir, maildir_path, tmpdir_):
        message = next(m for m in maildir if m.subject == "First")
        maildir.set_flag(message, Flag.READ)
        result = run_one(EditMode.EDIT, maildir, message, tmpdir_, append_text(b"world\n"))

        assert result.code is ResultCode.COMMITTED
        assert not result.replacement.read
        raw = maildir.get_bytes(result.replacement)
        assert not raw.startswith(b"From ")
        assert b"Status:" not in raw
        assert raw.endswith(b"hello\nworld\n")

        maildir.sync()
        maildir.close()
        with Mailbox(maildir_path).open() as box:
            assert sorted(m.subject for m in box) == ["First", "Second"]

    def test_mh(self, mh_path, tmpdir_):
        with Mailbox(mh_path).open(OpenMode.APPEND) as box:
            result = run_one(EditMode.EDIT, box, box.get(0), tmpdir_, append_text(b"world\n"))
            assert result.code is ResultCode.COMMITTED
            assert not result.replacement.read
            box.sync()
        with Mailbox(mh_path).open() as box:
            assert len(box) == 1
            assert box.get_bytes(box.get(0)).endswith(b"hello\nworld\n")

    def test_maildir_body_from_line_untouched(self, maildir, tmpdir_):
        source = make_message("Quoting", FROM_BODY)
        record = maildir.open_new_record(RecordFlags())
        record.fp.write(source)
        with maildir.appending():
            message = maildir.commit_record(record)

        result = run_one(EditMode.EDIT, maildir, message, tmpdir_, append_text(b"PS\n"))
        assert result.code is ResultCode.COMMITTED
        assert maildir.get_bytes(result.replacement) == source + b"PS\n"


class TestView:
    def test_unchanged(self, inbox, mbox_path, tmpdir_):
        before = mbox_path.read_bytes()
        result = run_one(EditMode.VIEW, inbox, inbox.get(0), tmpdir_, untouched)
        inbox.close()

        assert result.code is ResultCode.UNCHANGED
        assert result.reason is None
        assert mbox_path.read_bytes() == before
        assert list(tmpdir_.iterdir()) == []

    def test_surrogate_is_read_only(self, inbox, tmpdir_):
        modes = []

        def check(command, path):
            modes.append(os.stat(path).st_mode & 0o222)
            return 0

        run_one(EditMode.VIEW, inbox, inbox.get(0), tmpdir_, check)
        assert modes == [0]

    def test_changes_ignored(self, inbox, mbox_path, tmpdir_):
        before = mbox_path.read_bytes()
        message = inbox.get(0)
        result = run_one(EditMode.VIEW, inbox, message, tmpdir_, forcing_write)
        inbox.close()

        assert result.code is ResultCode.UNCHANGED
        assert "read-only mailbox modified" in result.reason
        assert not message.deleted
        assert mbox_path.read_bytes() == before
        assert list(tmpdir_.iterdir()) == []

    def test_emptied_file(self, inbox, tmpdir_):
        def wipe(command, path):
            os.chmod(path, 0o600)
            return emptying(command, path)

        result = run_one(EditMode.VIEW, inbox, inbox.get(0), tmpdir_, wipe)
        assert result.empty
        assert list(tmpdir_.iterdir()) == []


class TestFailures:
    def test_commit_failure_preserves_everything(self, inbox, mbox_path, tmpdir_, monkeypatch):
        before = mbox_path.read_bytes()

        def boom(record):
            raise WriteError("could not write message: No space left on device")

        monkeypatch.setattr(inbox, "commit_record", boom)
        message = inbox.get(0)
        result = run_one(EditMode.EDIT, inbox, message, tmpdir_, append_text(b"world\n"))

        assert result.code is ResultCode.FAILED
        assert not result.ok
        assert "No space left on device" in result.reason
        assert result.surrogate is not None
        assert result.surrogate.exists()
        assert result.surrogate.read_bytes().endswith(b"hello\nworld\n")
        assert not message.deleted and not message.purged and not message.read
        assert len(inbox) == 3
        inbox.close()
        assert mbox_path.read_bytes() == before

    def test_cannot_append(self, inbox, mbox_path, tmpdir_, monkeypatch):
        before = mbox_path.read_bytes()

        def locked():
            raise OSError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(inbox.box, "lock", locked)
        result = run_one(EditMode.EDIT, inbox, inbox.get(0), tmpdir_, append_text(b"world\n"))

        assert result.code is ResultCode.FAILED
        assert result.reason == "Can't append to folder: Permission denied"
        assert result.surrogate.exists()
        assert not inbox.get(0).deleted
        monkeypatch.undo()
        inbox.close()
        assert mbox_path.read_bytes() == before

    def test_read_only_mailbox(self, mbox_path, tmpdir_):
        before = mbox_path.read_bytes()
        with Mailbox(mbox_path).open() as box:
            message = box.get(0)
            result = run_one(EditMode.EDIT, box, message, tmpdir_, append_text(b"world\n"))

            assert result.code is ResultCode.FAILED
            assert result.reason.startswith("Can't append to folder")
            assert "read-only" in result.reason
            assert result.surrogate.read_bytes().endswith(b"hello\nworld\n")
            assert not message.deleted
        assert mbox_path.read_bytes() == before

    def test_extract_failure_removes_surrogate(self, inbox, tmpdir_, monkeypatch):
        def boom(source, message, path):
            raise WriteError("could not write temporary mail folder: Input/output error")

        monkeypatch.setattr("emledit.edit.extract_one", boom)
        editor = append_text(b"x\n")
        result = run_one(EditMode.EDIT, inbox, inbox.get(0), tmpdir_, editor)

        assert result.code is ResultCode.FAILED
        assert result.surrogate is None
        assert editor.calls == []
        assert list(tmpdir_.iterdir()) == []

    def test_cannot_create_surrogate(self, inbox, tmp_path):
        result = run_one(EditMode.EDIT, inbox, inbox.get(0), tmp_path / "missing", untouched)
        assert result.code is ResultCode.FAILED
        assert result.reason.startswith("could not create temporary folder")
        assert result.surrogate is None

    def test_surrogate_removed_by_editor(self, inbox, tmpdir_):
        def remove(command, path):
            os.unlink(path)
            return 0

        result = run_one(EditMode.EDIT, inbox, inbox.get(0), tmpdir_, remove)
        assert result.code is ResultCode.FAILED
        assert result.reason.startswith("Can't stat")


class TestBatch:
    def test_single_target_ignores_tags(self, inbox, tmpdir_):
        inbox.set_flag(inbox.get(2), Flag.TAGGED)
        editor = append_text(b"x\n")
        results = edit_or_view(EditMode.EDIT, inbox, inbox.get(0), editor="ed", tmpdir=tmpdir_, run_editor=editor)
        assert [r.message.subject for r in results] == ["First"]
        assert len(editor.calls) == 1

    def test_tagged_in_order(self, inbox, tmpdir_):
        inbox.set_flag(inbox.get(2), Flag.TAGGED)
        inbox.set_flag(inbox.get(0), Flag.TAGGED)
        editor = append_text(b"x\n")
        results = edit_message(inbox, editor="ed", tmpdir=tmpdir_, run_editor=editor)

        assert [r.message.subject for r in results] == ["First", "Third"]
        assert all(r.code is ResultCode.COMMITTED for r in results)
        assert not inbox.get(1).deleted
        # replacements were appended but not edited again
        assert len(editor.calls) == 2
        assert len(inbox) == 5

    def test_nothing_tagged(self, inbox, tmpdir_):
        editor = append_text(b"x\n")
        assert edit_message(inbox, editor="ed", tmpdir=tmpdir_, run_editor=editor) == []
        assert editor.calls == []

    def test_stops_on_first_failure(self, inbox, tmpdir_, monkeypatch):
        for message in inbox:
            inbox.set_flag(message, Flag.TAGGED)
        first, second, third = inbox.messages

        commit = inbox.commit_record
        attempts = []

        def flaky(record):
            attempts.append(record)
            if len(attempts) == 2:
                raise WriteError("could not write message: Input/output error")
            return commit(record)

        monkeypatch.setattr(inbox, "commit_record", flaky)
        editor = append_text(b"x\n")
        results = edit_message(inbox, editor="ed", tmpdir=tmpdir_, run_editor=editor)

        assert [r.code for r in results] == [ResultCode.COMMITTED, ResultCode.FAILED]
        assert first.deleted
        assert not second.deleted
        assert not third.deleted and third.tagged
        assert len(editor.calls) == 2

    def test_empty_file_does_not_stop(self, inbox, tmpdir_):
        inbox.set_flag(inbox.get(0), Flag.TAGGED)
        inbox.set_flag(inbox.get(1), Flag.TAGGED)
        results = edit_message(inbox, editor="ed", tmpdir=tmpdir_, run_editor=emptying)
        assert len(results) == 2
        assert all(r.empty for r in results)

    def test_view_never_writes(self, inbox, mbox_path, tmpdir_):
        before = mbox_path.read_bytes()
        for message in inbox:
            inbox.set_flag(message, Flag.TAGGED)
        results = view_message(inbox, editor="ed", tmpdir=tmpdir_, run_editor=forcing_write)
        inbox.close()

        assert len(results) == 3
        assert all(r.code is ResultCode.UNCHANGED for r in results)
        assert mbox_path.read_bytes() == before
