import orjson
from typer.testing import CliRunner

from salarymask.batch import run_batch
from salarymask.cli import app
from salarymask.pipeline.config import RunConfig

runner = CliRunner()


def test_mask_command_writes_outputs(tmp_path, salary_pdf):
    src = tmp_path / "resume.pdf"
    src.write_bytes(salary_pdf)
    result = runner.invoke(app, ["mask", "-i", str(src)])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "masked_resume.pdf").exists()
    meta = orjson.loads((tmp_path / "masked_resume.meta.json").read_bytes())
    assert meta["masked_count"] == 1
    assert meta["mode"] == "overlay"


def test_flatten_command_reads_regions(tmp_path, salary_pdf):
    src = tmp_path / "resume.pdf"
    src.write_bytes(salary_pdf)
    regions = tmp_path / "regions.json"
    regions.write_bytes(
        orjson.dumps([{"page": 1, "x": 60, "y": 120, "width": 480, "height": 35}])
    )
    out = tmp_path / "flat.pdf"
    result = runner.invoke(
        app, ["flatten", "-i", str(src), "-r", str(regions), "-o", str(out), "--no-audit"]
    )
    assert result.exit_code == 0, result.output
    meta = orjson.loads((tmp_path / "flat.meta.json").read_bytes())
    assert meta["mode"] == "flatten"
    assert meta["text_recoverable"] is False
    assert "audit" not in meta


def test_detect_command_json(tmp_path, salary_pdf):
    src = tmp_path / "resume.pdf"
    src.write_bytes(salary_pdf)
    result = runner.invoke(app, ["detect", "-i", str(src), "--json"])
    assert result.exit_code == 0, result.output
    assert orjson.loads(result.output)["count"] == 1


def test_run_batch_skips_failures(tmp_path, salary_pdf, plain_pdf):
    good = tmp_path / "a.pdf"
    good.write_bytes(salary_pdf)
    clean = tmp_path / "b.pdf"
    clean.write_bytes(plain_pdf)
    broken = tmp_path / "c.pdf"
    broken.write_bytes(b"not a pdf")
    out_dir = tmp_path / "out"
    pairs = run_batch(
        [str(good), str(clean), str(broken)], str(out_dir), RunConfig(), workers=1, progress=False
    )
    assert sorted(p[0] for p in pairs) == [str(good), str(clean)]
    assert (out_dir / "masked_a.pdf").exists()
    assert (out_dir / "masked_b.pdf").read_bytes() == plain_pdf
    assert not (out_dir / "masked_c.pdf").exists()
