"""Simple batch runner with multiprocessing concurrency.

Applies automatic salary masking to a directory or glob of PDFs and writes
``masked_<name>`` copies to an output directory.
"""

from __future__ import annotations

from typing import List, Tuple
from pathlib import Path
from concurrent.futures import ProcessPoolExecutor, as_completed

from tqdm import tqdm

from .core import RunConfig, masked_filename, process_path
from .logging import get_logger

logger = get_logger(__name__)


def _one(args: Tuple[str, str, RunConfig]) -> Tuple[str, str, int]:
    inp, out_dir, cfg = args
    p = Path(inp)
    out_path = str(Path(out_dir) / masked_filename(p.name))
    res = process_path(inp, out_path, cfg)
    return inp, res.get("out", out_path), int(res.get("masked_count", 0))


def run_batch(
    inputs: List[str],
    output_dir: str,
    cfg: RunConfig,
    workers: int = 2,
    progress: bool = True,
) -> List[Tuple[str, str]]:
    """Process multiple inputs concurrently.

    Returns a list of (input, output) pairs for the files that succeeded.
    Failures are logged per file and do not stop the batch.
    """
    Path(output_dir).mkdir(parents=True, exist_ok=True)
    results: List[Tuple[str, str]] = []
    with ProcessPoolExecutor(max_workers=max(1, int(workers))) as ex:
        futs = {ex.submit(_one, (i, output_dir, cfg)): i for i in inputs}
        for f in tqdm(as_completed(futs), total=len(futs), desc="Masking", disable=not progress):
            inp = futs[f]
            try:
                _, out, count = f.result()
            except Exception as exc:
                logger.error(
                    "Batch item failed",
                    extra={"input": inp, "error": str(exc), "error_type": type(exc).__name__},
                )
                continue
            logger.info("Batch item done", extra={"input": inp, "out": out, "masked_count": count})
            results.append((inp, out))
    return results
