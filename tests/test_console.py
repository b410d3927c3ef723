from xcedectl.command import get_action
from xcedectl.model import EXIT_CANCELLED, EXIT_SPAWN_FAILED, Job, JobHandle, JobState, Stream
from xcedectl.orchestrator import JobOrchestrator, SpawnFailure
from xcedectl.ui.console import Console, ConsoleSink
from xcedectl.ui.status import StatusLine


def _job(state=JobState.RUNNING):
    return Job(handle=JobHandle(1), command="xcede build", cwd="/work", state=state)


def test_header_and_output(capsys):
    sink = ConsoleSink(Console(), get_action("build"), {"scheme": "App"})
    sink.on_start(_job())
    sink.on_output(Stream.STDOUT, ["compiling"])
    sink.on_output(Stream.STDERR, ["warning: x"])

    out, err = capsys.readouterr()
    assert "Running: xcede build" in out
    assert "Working directory: /work" in out
    assert "Config: scheme=App, platform=none, device=none" in out
    assert "compiling" in out
    assert "warning: x" in err


def test_success_summary(capsys):
    job = _job()
    sink = ConsoleSink(Console(), get_action("build"))
    sink.on_start(job)
    job.state = JobState.SUCCEEDED
    job.mark_finished(0)
    sink.on_exit(0)

    out, _ = capsys.readouterr()
    assert "✓ Xcode Build completed successfully" in out
    assert "Time: " in out
    assert sink.exit_code == 0


def test_failure_with_shell_hint(capsys):
    job = _job()
    sink = ConsoleSink(Console(), get_action("test"), notify_on_failure=False)
    sink.on_start(job)
    job.state = JobState.FAILED
    job.mark_finished(127)
    sink.on_exit(127)

    out, err = capsys.readouterr()
    assert "✗ Xcode Test failed with exit code: 127" in out
    assert "Hint: A command in the pipeline was not found" in out
    assert err == ""


def test_cancelled_job_prints_stopped(capsys):
    job = _job()
    sink = ConsoleSink(Console(), get_action("run"))
    sink.on_start(job)
    job.state = JobState.CANCELLED
    sink.on_exit(EXIT_CANCELLED)

    out, _ = capsys.readouterr()
    assert "Stopped: Xcode Run" in out
    assert "failed" not in out


def test_spawn_failure_reported_as_error(capsys):
    job = _job()
    sink = ConsoleSink(Console(), get_action("build"))
    sink.on_start(job)
    job.state = JobState.FAILED
    job.error = SpawnFailure("xcede build", "/gone", "No such file or directory")
    sink.on_exit(EXIT_SPAWN_FAILED)

    _, err = capsys.readouterr()
    assert "Failed to start build" in err
    assert "/gone" in err


def test_app_launch_detected_once(capsys):
    sink = ConsoleSink(Console(), get_action("buildrun"))
    sink.on_start(_job())
    sink.on_output(Stream.STDOUT, ["Compiling", "Launched com.example.App"])
    sink.on_output(Stream.STDOUT, ["Running again"])

    out, _ = capsys.readouterr()
    assert out.count("App is running...") == 1


def test_launch_markers_ignored_for_build(capsys):
    sink = ConsoleSink(Console(), get_action("build"))
    sink.on_start(_job())
    sink.on_output(Stream.STDOUT, ["Running script phase"])
    out, _ = capsys.readouterr()
    assert "App is running..." not in out


def test_debug_messages_only_in_debug_mode(capsys):
    Console().print_debug("hidden")
    Console(debug=True).print_debug("shown")
    _, err = capsys.readouterr()
    assert "hidden" not in err
    assert "[DEBUG] shown" in err


def test_status_line_follows_job(tmp_path, pump):
    orch = JobOrchestrator(grace_period=0.05)
    status = StatusLine(orch)
    status.set_running_label("Building...")
    changes = []
    status.on_change(changes.append)

    handle = orch.start("echo ok", cwd=tmp_path)
    assert status.text == "Building..."
    orch.wait(handle, timeout=5)
    assert status.text == "Success"
    assert pump(orch, lambda: status.text == "Idle", timeout=2)

    assert status.history == ["Idle", "Building...", "Success", "Idle"]
    assert changes == ["Building...", "Success", "Idle"]
    status.close()


def test_status_line_reports_stopped(tmp_path):
    orch = JobOrchestrator(grace_period=10)
    status = StatusLine(orch)
    handle = orch.start("sleep 5", cwd=tmp_path)
    orch.cancel(handle)
    assert status.text == "Stopped"
    orch.wait(handle, timeout=5)
    assert status.text == "Stopped"
