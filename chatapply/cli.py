# chatapply/cli
"""
ChatApply CLI 主入口（通过 Applier 服务层调用）
"""
import asyncio
from datetime import datetime

import click
from rich.panel import Panel
from rich.text import Text

from applyflow.core.errors import ApplyFlowError, ConfigError
from applyflow.core.summary import describe_batch
from applyflow.utils.trace import set_verbose

from chatapply import __version__
from chatapply.core.applier import Applier
from chatapply.core.config import CONFIG_FILE, STATE_DIR, load_config
from chatapply.init import init_project, validate_config_content
from chatapply.utils.console import console, error, heading, info, print_table, styled, success, confirm

STATUS_STYLES = {
    "applied_success": "status.ok",
    "user_resolved": "status.ok",
    "validation_success": "status.ok",
    "applied_failed": "status.fail",
    "validation_failed_no_file": "status.review",
    "validation_failed_search_not_found": "status.review",
    "validation_failed_identical_content": "status.review",
    "validation_tolerant_match_pending": "status.review",
    "skipped_by_user": "status.muted",
    "pending_validation": "status.muted",
}


def _format_time(timestamp: float) -> str:
    try:
        return datetime.fromtimestamp(timestamp).strftime('%Y-%m-%d %H:%M:%S')
    except (OverflowError, OSError, ValueError):
        return "Invalid Date"


# ------------------------------
# CLI 主入口
# ------------------------------

@click.group(invoke_without_command=True)
@click.version_option(__version__, message="ChatApply CLI v%(version)s")
@click.option("--verbose", "-v", is_flag=True, help="Print parser and apply diagnostics to stderr")
@click.pass_context
def cli(ctx, verbose: bool):
    """🤖 ChatApply - apply LLM-proposed file changes to your project"""
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _load_applier(ctx) -> Applier:
    """加载配置并实例化 Applier 服务"""
    try:
        config = load_config(CONFIG_FILE)
    except ConfigError as e:
        error(f"Failed to load {CONFIG_FILE}: {e.message}")
        raise click.Abort()
    set_verbose(ctx.obj.get('VERBOSE', False) or config.verbose)
    return Applier(config=config, state_dir=STATE_DIR)


def _run(coro):
    """运行 Applier 的异步方法，把 applyflow 异常转换为 CLI 错误"""
    try:
        return asyncio.run(coro)
    except ApplyFlowError as e:
        raise click.ClickException(e.message)


def _call(func, *args):
    try:
        return func(*args)
    except ApplyFlowError as e:
        raise click.ClickException(e.message)


def _show_items(batch) -> None:
    if batch.parse_error:
        error(batch.parse_error)
        return
    if not batch.items:
        info("No actionable changes found in this response.")
        return
    rows = []
    for item in batch.items:
        rows.append([
            item.index,
            item.operation.kind,
            item.path or "-",
            item.status.value,
            item.error or "",
        ])
    print_table(rows, headers=["#", "Kind", "Path", "Status", "Note"], title=f"Response #{batch.number}")


# ------------------------------
# 命令: init / validate
# ------------------------------

@cli.command()
@click.option("--defaults", is_flag=True, help="Use default values without prompting")
def init(defaults: bool):
    """🔧 Initialize project configuration"""
    heading("Project Initialization")
    if CONFIG_FILE.exists():
        if not confirm(f"{CONFIG_FILE} already exists. Overwrite?", default=False):
            info("Cancelled.")
            return
    try:
        config_content = init_project(interactive=not defaults)
        STATE_DIR.mkdir(exist_ok=True)
        (STATE_DIR / "batches").mkdir(exist_ok=True)
        CONFIG_FILE.write_text(config_content, encoding="utf-8")
        success(f"Generated: {CONFIG_FILE}")
    except OSError as e:
        error(f"Initialization failed: {e}")
        raise click.Abort()
    success("Initialization complete!")


@cli.command()
def validate():
    """🔍 Validate .chatapply/config.yaml"""
    if not CONFIG_FILE.exists():
        error(f"{CONFIG_FILE} not found. Please run `chatapply init` first.")
        raise click.Abort()
    validate_config_content(CONFIG_FILE.read_text(encoding="utf-8"))


# ------------------------------
# 命令: parse / list / show
# ------------------------------

@cli.command()
@click.argument("response_file", type=click.File("r", encoding="utf-8"))
@click.pass_context
def parse(ctx, response_file):
    """📥 Parse an LLM response (FILE or - for stdin) and validate it as a new batch"""
    applier = _load_applier(ctx)
    text = response_file.read()
    batch = _run(applier.process_response(text))
    _show_items(batch)
    if not batch.parse_error:
        console.print("\n💡 Suggested next command:")
        console.print(f"[dim]$[/dim] [cyan]chatapply apply {batch.number}[/cyan]")


@cli.command(name="list")
@click.pass_context
def list_batches(ctx):
    """📋 List all processed responses"""
    applier = _load_applier(ctx)
    heading("Responses")
    batches = applier.list_batches()
    if not batches:
        console.print("No responses found.", style="yellow")
        return
    rows = [
        [batch.number, batch.summary, describe_batch(batch), _format_time(batch.created_at)]
        for batch in batches
    ]
    print_table(rows, headers=["#", "Status", "Contents", "Created At"])


@cli.command()
@click.argument("number", type=int)
@click.pass_context
def show(ctx, number: int):
    """📊 Show the items of one response"""
    applier = _load_applier(ctx)
    batch = _call(applier.get_batch, number)
    heading(f"Response #{number}: {batch.summary}")
    _show_items(batch)
    for item in batch.items:
        if item.failed_search_text is not None:
            console.print(Panel(
                Text(item.failed_search_text),
                title=f"Item {item.index}: search text ({item.path})",
                border_style=STATUS_STYLES.get(item.status.value, "white"),
            ))
    if batch.commit_message:
        console.print(Panel(Text(batch.commit_message), title="Commit message", border_style="green"))


# ------------------------------
# 命令: apply / apply-all / force / skip / resolve
# ------------------------------

@cli.command()
@click.argument("number", type=int)
@click.pass_context
def apply(ctx, number: int):
    """💾 Apply all valid changes of one response"""
    applier = _load_applier(ctx)
    heading(f"Applying Response #{number}")
    _run(applier.apply_batch(number))


@cli.command(name="apply-all")
@click.option("--block-on-errors/--no-block-on-errors", default=None,
              help="Refuse to apply anything while any response has items with errors")
@click.pass_context
def apply_all(ctx, block_on_errors):
    """🚀 Apply valid changes of every response in creation order"""
    applier = _load_applier(ctx)
    heading("Applying All Responses")
    report = _run(applier.apply_all(block_on_errors=block_on_errors))
    if report.blocked_by is not None:
        ctx.exit(1)


@cli.command()
@click.argument("number", type=int)
@click.argument("index", type=int)
@click.pass_context
def force(ctx, number: int, index: int):
    """⚡ Force-apply one item despite its validation result"""
    applier = _load_applier(ctx)
    outcome = _run(applier.apply_single(number, index, force=True))
    status = outcome.item.status.value
    console.print(f"Item {index}: " + styled(status, STATUS_STYLES.get(status, "white")))


@cli.command()
@click.argument("number", type=int)
@click.argument("index", type=int)
@click.pass_context
def skip(ctx, number: int, index: int):
    """⏭️ Skip one item"""
    applier = _load_applier(ctx)
    _call(applier.skip, number, index)


@cli.command()
@click.argument("number", type=int)
@click.argument("index", type=int)
@click.pass_context
def resolve(ctx, number: int, index: int):
    """✔️ Mark one item as manually resolved"""
    applier = _load_applier(ctx)
    _call(applier.resolve, number, index)


# ------------------------------
# 命令: request-files / clear
# ------------------------------

@cli.command(name="request-files")
@click.argument("number", type=int)
@click.pass_context
def request_files(ctx, number: int):
    """🧾 Print a prompt asking the LLM for full files of failed search/replace edits"""
    applier = _load_applier(ctx)
    prompt = _call(applier.request_full_files_prompt, number)
    if prompt:
        click.echo(prompt)


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear(ctx, yes: bool):
    """🗑️ Clear all processed responses"""
    applier = _load_applier(ctx)
    if not yes and not confirm("Clear all processed responses? This action cannot be undone.", default=False):
        info("Cancelled.")
        return
    applier.clear_all()


if __name__ == '__main__':
    cli()
