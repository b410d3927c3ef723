# cli.py
from __future__ import annotations

import shutil
import sys
from pathlib import Path

import click

from xcedectl.command import ACTIONS, build_command, get_action
from xcedectl.config import ConfigError, Options, load_options
from xcedectl.logging_config import setup_logging
from xcedectl.orchestrator import CommandNotFound, JobOrchestrator
from xcedectl.ui.console import Console, ConsoleSink, get_console, set_console
from xcedectl.ui.status import StatusLine
from xcedectl.xcrc import find_project_root, load_xcrc


def make_orchestrator(options: Options) -> JobOrchestrator:
    return JobOrchestrator(
        shell=options.shell,
        grace_period=options.grace_period,
        kill_timeout=options.kill_timeout,
    )


def resolve_beautifier(options: Options, wanted: bool) -> str | None:
    """The beautifier to pipe through, or None if disabled or not installed."""
    if not (wanted and options.xcbeautify):
        return None
    if shutil.which(options.beautifier) is None:
        get_console().print_debug(f"{options.beautifier} not found, showing raw output")
        return None
    return options.beautifier


def _exit_status(code: int | None) -> int:
    if code is None or code < 0:
        return 1
    return code


def run_action(ctx: click.Context, action_name: str, cwd: str | None, beautify: bool | None) -> None:
    """Resolve project + settings, start the job, and stream it until exit."""
    console = get_console()
    try:
        _run_job(ctx, console, action_name, cwd, beautify)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


def _run_job(ctx: click.Context, console: Console, action_name: str, cwd: str | None, beautify: bool | None) -> None:
    options: Options = ctx.obj["options"]
    action = get_action(action_name)

    start_dir = Path(cwd or ".").resolve()
    project_root = find_project_root(start_dir)
    if project_root is None:
        console.print_debug(f"no Xcode/Swift project found above {start_dir}")
    settings = load_xcrc(project_root)

    beautifier = resolve_beautifier(options, action.beautify if beautify is None else beautify)
    invocation = build_command(
        action,
        settings,
        executable=options.executable,
        beautifier=beautifier,
    )

    orchestrator = make_orchestrator(options)
    status = StatusLine(orchestrator)
    status.set_running_label(action.status)
    status.on_change(lambda text: console.print_debug(f"status: {text}"))

    sink = ConsoleSink(
        console,
        action,
        settings,
        notify_on_success=options.notify_on_success,
        notify_on_failure=options.notify_on_failure,
    )

    try:
        handle = orchestrator.start(
            invocation.command,
            cwd=project_root or start_dir,
            sink=sink,
            requires=invocation.requires,
        )
    except CommandNotFound as e:
        console.print_error(
            f"{e.command} not found",
            str(e),
            suggestion=e.hint,
        )
        sys.exit(1)

    try:
        job = orchestrator.wait(handle)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        orchestrator.cancel(handle)
        try:
            orchestrator.wait(handle, timeout=options.kill_timeout + 1.0)
        except TimeoutError:
            console.print_debug("job did not report exit after cancel")
        sys.exit(130)
    finally:
        status.close()
        orchestrator.shutdown()

    sys.exit(_exit_status(job.exit_code))


_cwd_option = click.option(
    "--cwd",
    default=None,
    type=click.Path(exists=True, file_okay=False),
    help="Directory to start the project search from (defaults to the current directory)",
)
_beautify_option = click.option(
    "--beautify/--no-beautify",
    default=None,
    help="Pipe output through the beautifier (default depends on the action)",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """xcedectl — build, run and test Xcode/Swift projects through xcede."""
    console = Console(debug=debug)
    set_console(console)
    setup_logging("DEBUG" if debug else "WARNING")
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    try:
        ctx.obj["options"] = load_options()
    except ConfigError as e:
        console.print_error(
            "Invalid configuration",
            "Could not load options from the environment.",
            details=[str(e)],
            suggestion="Check the XCEDECTL_* environment variables.",
        )
        sys.exit(1)


@cli.command()
@_cwd_option
@_beautify_option
@click.pass_context
def build(ctx, cwd, beautify):
    """Build the project."""
    run_action(ctx, "build", cwd, beautify)


@cli.command()
@_cwd_option
@_beautify_option
@click.pass_context
def run(ctx, cwd, beautify):
    """Run the app (output is shown raw so app logs are visible)."""
    run_action(ctx, "run", cwd, beautify)


@cli.command()
@_cwd_option
@_beautify_option
@click.pass_context
def buildrun(ctx, cwd, beautify):
    """Build, then run the app."""
    run_action(ctx, "buildrun", cwd, beautify)


@cli.command()
@_cwd_option
@_beautify_option
@click.pass_context
def test(ctx, cwd, beautify):
    """Run the test suite."""
    run_action(ctx, "test", cwd, beautify)


@cli.command()
@_cwd_option
@click.pass_context
def debug(ctx, cwd):
    """Show installation, project and configuration details."""
    console = get_console()
    options: Options = ctx.obj["options"]

    start_dir = Path(cwd or ".").resolve()
    project_root = find_project_root(start_dir)
    settings = load_xcrc(project_root)
    beautifier = resolve_beautifier(options, ACTIONS["build"].beautify)
    invocation = build_command("build", settings, executable=options.executable, beautifier=beautifier)
    status = StatusLine(make_orchestrator(options))

    def installed(name: str) -> str:
        return "yes" if shutil.which(name) else "NO"

    console.print_header("xcedectl Debug Info")
    lines = [
        f"{options.executable} installed: {installed(options.executable)}",
        f"{options.beautifier} installed: {installed(options.beautifier).lower()}",
        f"Working directory: {start_dir}",
        f"Project root: {project_root or 'not found'}",
        "",
        "Parsed .xcrc config:",
        f"  scheme: {settings.get('scheme', 'not set')}",
        f"  platform: {settings.get('platform', 'not set')}",
        f"  device: {settings.get('device', 'not set')}",
        "",
        "Options:",
    ]
    lines += [f"  {name}: {value}" for name, value in options.model_dump().items()]
    lines += [
        "",
        "Build command would be:",
        f"  {invocation.command}",
        "",
        f"Current status: {status.text}",
    ]
    for line in lines:
        console.print_info(line)
    status.close()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
