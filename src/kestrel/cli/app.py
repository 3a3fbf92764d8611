from __future__ import annotations

import asyncio
import json
import signal
from pathlib import Path
from typing import Any

import typer
import uvicorn

from kestrel.api.app import create_app
from kestrel.config import Settings, get_settings
from kestrel.core.activity import ActivityLog
from kestrel.core.automation import AutomationSession, SetupError
from kestrel.core.profile import build_profile, load_profile, save_profile
from kestrel.core.state import RunController
from kestrel.db.init import init_database
from kestrel.llm.router import LLMRouter
from kestrel.logging_config import configure_logging
from kestrel.store.client import RecordStore, build_record_store
from kestrel.types import ApplicationRecord

app = typer.Typer(help="Kestrel CLI")
profile_app = typer.Typer(help="Build and inspect the matching profile")

app.add_typer(profile_app, name="profile")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


@app.command("init")
def init_cmd() -> None:
    """Initialize database and directories."""
    configure_logging()
    result = init_database()
    typer.echo(json.dumps({"ok": True, **result}, indent=2))


@profile_app.command("build")
def profile_build(file: Path = typer.Option(..., "--file", exists=True, readable=True)) -> None:
    """Build the persona profile from a plain-text resume."""
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    profile = build_profile(file.read_text(encoding="utf-8"), LLMRouter(settings))
    path = save_profile(profile, settings.profile_path)
    typer.echo(
        json.dumps(
            {
                "path": str(path),
                "persona_text": profile.persona_text,
                "vector_dimensions": len(profile.persona_vector),
            },
            indent=2,
        )
    )


@profile_app.command("show")
def profile_show() -> None:
    configure_logging()
    profile = load_profile(get_settings().profile_path)
    if profile is None:
        typer.echo(json.dumps({"has_profile": False}, indent=2))
        raise typer.Exit(code=1)
    typer.echo(
        json.dumps(
            {
                "has_profile": profile.has_profile,
                "persona_text": profile.persona_text,
                "vector_dimensions": len(profile.persona_vector),
                "resume_chars": len(profile.raw_text),
            },
            indent=2,
        )
    )


@app.command("run")
def run_cmd(
    store: str | None = typer.Option(None, "--store", help="Record store backend: http or local"),
) -> None:
    """Run the traversal loop in the foreground against the attached browser tab.

    Ctrl-C or SIGTERM stops the run at its next poll point; SIGUSR1 toggles pause.
    """
    configure_logging()
    ensure_initialized()
    settings = _with_store(get_settings(), store)

    try:
        summary = asyncio.run(_run_foreground(settings))
    except SetupError as exc:
        typer.echo(json.dumps({"ok": False, "error": str(exc)}, indent=2))
        raise typer.Exit(code=1) from exc
    typer.echo(json.dumps({"ok": True, "summary": summary}, indent=2))


@app.command("history")
def history_cmd(
    user_id: str = typer.Option(..., "--user-id"),
    limit: int = typer.Option(20, "--limit"),
    store: str | None = typer.Option(None, "--store", help="Record store backend: http or local"),
) -> None:
    """List recorded applications, newest first."""
    configure_logging()
    ensure_initialized()
    settings = _with_store(get_settings(), store)
    records = asyncio.run(_list_history(build_record_store(user_id, settings)))
    typer.echo(
        json.dumps([record.model_dump(mode="json", by_alias=True) for record in records[:limit]], indent=2)
    )


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    app_instance = create_app()
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)


def _with_store(settings: Settings, store: str | None) -> Settings:
    if store is None:
        return settings
    return Settings(**{**settings.model_dump(), "store_mode": store})


async def _list_history(store: RecordStore) -> list[ApplicationRecord]:
    try:
        return await store.list_applications()
    finally:
        await store.aclose()


async def _run_foreground(settings: Settings) -> dict[str, Any]:
    controller = RunController(poll_interval_sec=settings.poll_interval_ms / 1000)
    controller.start()
    _install_signal_handlers(controller)
    session = AutomationSession(controller=controller, activity=ActivityLog(), settings=settings)
    summary = await session.run()
    return summary.as_dict()


def _install_signal_handlers(controller: RunController) -> None:
    handlers = {signal.SIGINT: controller.stop, signal.SIGTERM: controller.stop}
    if hasattr(signal, "SIGUSR1"):
        handlers[signal.SIGUSR1] = controller.toggle

    loop = asyncio.get_running_loop()
    for signum, handler in handlers.items():
        try:
            loop.add_signal_handler(signum, handler)
        except NotImplementedError:
            signal.signal(signum, lambda *_args, _handler=handler: _handler())
