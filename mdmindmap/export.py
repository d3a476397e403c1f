"""One-shot export of a mind map into a standalone HTML file."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Signal

from mdmindmap.assets import AssetCatalog, AssetManifest, AssetReadError, AssetResolver, Iife, ResolveMode, Style, merge_assets
from mdmindmap.log import get_logger
from mdmindmap.options import embed_assets_enabled
from mdmindmap.pipeline import SessionState
from mdmindmap.template import fill_template
from mdmindmap.transform import Transformer

logger = get_logger(__name__)

RENDER_TOOLBAR_JS = """() => {
  const { markmap, mm } = window;
  const toolbar = new markmap.Toolbar();
  toolbar.attach(mm);
  const el = toolbar.render();
  el.setAttribute("style", "position:absolute;bottom:20px;right:20px");
  document.body.append(el);
}"""
DEFER_JS = "(render) => { setTimeout(render); }"


class ExportState(enum.Enum):
    CANCELLED = "cancelled"
    WRITTEN = "written"
    FAILED = "failed"


@dataclass(frozen=True)
class ExportOutcome:
    state: ExportState
    path: Path | None = None
    error: str | None = None


class ArtifactWriteError(Exception):
    """The export destination could not be written."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f'Cannot write file "{path}": {reason}')
        self.path = path
        self.reason = reason


@dataclass(frozen=True)
class ExportJob:
    root: dict[str, Any]
    manifest: AssetManifest
    json_options: dict[str, Any]
    embed_assets: bool
    title: str


def toolbar_deferral() -> AssetManifest:
    """Mount the toolbar only after the render script has created `window.mm`."""
    return AssetManifest(scripts=(Iife(DEFER_JS, (RENDER_TOOLBAR_JS,)),))


def prepare_export(
    text: str,
    state: SessionState,
    transformer: Transformer,
    catalog: AssetCatalog,
    title: str,
) -> ExportJob:
    """Transform the document and assemble the export manifest, still in reference form."""
    result = transformer.transform(text)
    json_options = state.effective_options(result.frontmatter)
    extras = AssetManifest(
        styles=(Style(state.custom_css),) if state.custom_css else (),
    )
    manifest = merge_assets(
        catalog.base_assets(),
        catalog.feature_assets(result.features),
        catalog.toolbar_assets(),
        extras,
        toolbar_deferral(),
    )
    return ExportJob(
        root=result.root,
        manifest=manifest,
        json_options=json_options,
        embed_assets=embed_assets_enabled(json_options),
        title=title,
    )


def render_artifact(job: ExportJob, resolver: AssetResolver) -> str:
    """Fill the export template; embed mode reads every referenced asset first."""
    if job.embed_assets:
        manifest = resolver.resolve(job.manifest, ResolveMode.EMBED)
    else:
        # Package-relative paths become absolute URLs.
        manifest = resolver.resolve(job.manifest, ResolveMode.LIVE_REFERENCE)
    return fill_template(job.root, manifest, job.json_options, job.title)


def write_artifact(path: Path, html_doc: str) -> None:
    try:
        path.write_text(html_doc, encoding="utf-8")
    except OSError as exc:
        raise ArtifactWriteError(path, exc.strerror or str(exc)) from exc


class ExportWorkerSignals(QObject):
    """Signals emitted by background export workers."""

    finished = Signal(str, str, str)


class ExportWorker(QRunnable):
    """Resolve assets, fill the template and write the artifact off the UI thread."""

    def __init__(self, job: ExportJob, destination: Path, resolver: AssetResolver):
        super().__init__()
        self.job = job
        self.destination = destination
        self.resolver = resolver
        self.signals = ExportWorkerSignals()

    def execute(self) -> ExportOutcome:
        try:
            html_doc = render_artifact(self.job, self.resolver)
        except AssetReadError as exc:
            # Nothing has been written yet, so no file can reference the missing asset.
            return ExportOutcome(ExportState.FAILED, self.destination, str(exc))
        try:
            write_artifact(self.destination, html_doc)
        except ArtifactWriteError as exc:
            return ExportOutcome(ExportState.FAILED, self.destination, str(exc))
        return ExportOutcome(ExportState.WRITTEN, self.destination)

    def run(self) -> None:
        try:
            outcome = self.execute()
        except Exception as exc:
            logger.exception("Export worker failed")
            outcome = ExportOutcome(ExportState.FAILED, self.destination, f"Cannot export mind map: {exc}")
        self.signals.finished.emit(outcome.state.value, str(self.destination), outcome.error or "")


class ExportPipeline(QObject):
    """Drives one export: destination prompt, transform, asset merge, background write."""

    started = Signal(object)
    finished = Signal(object)

    def __init__(
        self,
        transformer: Transformer,
        catalog: AssetCatalog,
        resolver: AssetResolver,
        choose_destination: Callable[[], Path | None],
        report_error: Callable[[str, str], None],
        thread_pool: QThreadPool | None = None,
        parent=None,
    ):
        super().__init__(parent)
        self._transformer = transformer
        self._catalog = catalog
        self._resolver = resolver
        self._choose_destination = choose_destination
        self._report_error = report_error
        self._pool = thread_pool or QThreadPool.globalInstance()
        self._active_workers: set[ExportWorker] = set()

    @property
    def in_flight(self) -> int:
        return len(self._active_workers)

    def start(self, read_text: Callable[[], str], state: SessionState, title: str) -> bool:
        """Begin an export; returns False when it ended synchronously (cancelled or failed)."""
        destination = self._choose_destination()
        if destination is None:
            logger.debug("Export cancelled")
            self.finished.emit(ExportOutcome(ExportState.CANCELLED))
            return False

        try:
            job = prepare_export(read_text(), state, self._transformer, self._catalog, title)
        except Exception as exc:
            logger.exception("Export preparation failed")
            self._fail(ExportOutcome(ExportState.FAILED, destination, f"Cannot render mind map: {exc}"))
            return False

        logger.info("Exporting %s (embedAssets=%s)", destination, job.embed_assets)
        worker = ExportWorker(job, destination, self._resolver)
        self._active_workers.add(worker)
        worker.signals.finished.connect(
            lambda state_text, path_text, error_text, current_worker=worker: self._on_worker_finished(
                current_worker,
                state_text,
                path_text,
                error_text,
            )
        )
        self.started.emit(destination)
        self._pool.start(worker)
        return True

    def _on_worker_finished(self, worker: ExportWorker, state_text: str, path_text: str, error_text: str) -> None:
        self._active_workers.discard(worker)
        outcome = ExportOutcome(ExportState(state_text), Path(path_text), error_text or None)
        if outcome.state is ExportState.FAILED:
            self._fail(outcome)
            return
        logger.info("Exported %s", outcome.path)
        self.finished.emit(outcome)

    def _fail(self, outcome: ExportOutcome) -> None:
        logger.error("Export failed: %s", outcome.error)
        self._report_error("Export failed", outcome.error or "Unknown error")
        self.finished.emit(outcome)
