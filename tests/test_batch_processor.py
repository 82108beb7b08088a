"""Тесты пакетной конвертации."""

import asyncio

import pytest

from arabic_ocr.errors import EmptyDocumentError, InvalidInputError, NoDocumentsFoundError
from arabic_ocr.schemas import BatchOptions, ConversionOutcome, PipelineFailure, PipelineSuccess
from arabic_ocr.services.batch_processor import (
    SUMMARY_FILENAME,
    batch_process_pdfs,
    build_jobs,
    chunked,
    find_pdf_files,
)
from arabic_ocr.services.pipeline import convert_pdf_to_text
from conftest import PDF_BYTES, FakeEngine, FakeRasterizer


def make_pdfs(folder, names):
    folder.mkdir(parents=True, exist_ok=True)
    for name in names:
        (folder / name).write_bytes(PDF_BYTES)
    return folder


class RecordingConverter:
    """Конвертер-заглушка: считает одновременные вызовы, падает на fail_names."""

    def __init__(self, fail_names=(), delay=0.01):
        self.fail_names = set(fail_names)
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.calls = []

    async def __call__(self, pdf_path, options):
        self.calls.append((pdf_path.name, options))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if pdf_path.name in self.fail_names:
                raise EmptyDocumentError(f"No pages could be rasterized from {pdf_path.name}")
            options.output_text.write_text("text", encoding="utf-8")
            return ConversionOutcome(
                output_path=options.output_text,
                page_count=2,
                images_folder=options.temp_images_folder,
                duration_ms=1,
            )
        finally:
            self.active -= 1


class TestFindPdfFiles:
    def test_directory_non_recursive_case_insensitive(self, tmp_path):
        folder = make_pdfs(tmp_path / "in", ["b.pdf", "A.PDF", "notes.txt"])
        make_pdfs(folder / "nested", ["c.pdf"])

        assert [p.name for p in find_pdf_files(folder)] == ["A.PDF", "b.pdf"]

    def test_single_pdf(self, pdf_file):
        assert find_pdf_files(pdf_file) == [pdf_file]

    def test_not_a_pdf(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("x")
        with pytest.raises(InvalidInputError):
            find_pdf_files(path)

    def test_missing_path(self, tmp_path):
        with pytest.raises(InvalidInputError):
            find_pdf_files(tmp_path / "absent")


class TestBuildJobs:
    def test_paths_from_stem(self, tmp_path):
        jobs = build_jobs([tmp_path / "report.pdf"], tmp_path / "out")

        assert jobs[0].output_text == tmp_path / "out" / "report_ocr.txt"
        assert jobs[0].temp_images_folder == tmp_path / "out" / "report_temp_images"

    def test_colliding_stems_get_suffix(self, tmp_path):
        pdfs = [tmp_path / "X.pdf", tmp_path / "x.PDF", tmp_path / "x_2.pdf", tmp_path / "x.pdf"]

        names = [job.output_text.name for job in build_jobs(pdfs, tmp_path)]

        assert names == ["X_ocr.txt", "x_2_ocr.txt", "x_2_2_ocr.txt", "x_3_ocr.txt"]
        assert len({name.casefold() for name in names}) == 4


class TestChunked:
    def test_chunks(self):
        assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]


class TestBatchProcessPdfs:
    def test_partial_failure_reported(self, tmp_path):
        folder = make_pdfs(tmp_path / "in", ["a.pdf", "bad.pdf", "c.pdf"])
        out = tmp_path / "results"
        converter = RecordingConverter(fail_names={"bad.pdf"})

        summary = asyncio.run(
            batch_process_pdfs(folder, BatchOptions(output_folder=out, concurrent=2), converter)
        )

        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.total_files == 3
        assert [r.input for r in summary.results] == ["a.pdf", "bad.pdf", "c.pdf"]
        assert isinstance(summary.results[1], PipelineFailure)
        assert isinstance(summary.results[0], PipelineSuccess)

        report = (out / SUMMARY_FILENAME).read_text(encoding="utf-8")
        assert summary.report_path == out / SUMMARY_FILENAME
        assert "BATCH PDF TO TEXT CONVERSION SUMMARY" in report
        assert "Total Files: 3" in report
        assert "Successful: 2" in report
        assert "Failed: 1" in report
        assert "bad.pdf" in report
        assert "No pages could be rasterized from bad.pdf" in report
        assert "a_ocr.txt" in report

    def test_concurrency_limit(self, tmp_path):
        folder = make_pdfs(tmp_path / "in", [f"doc{n}.pdf" for n in range(5)])
        converter = RecordingConverter()

        summary = asyncio.run(
            batch_process_pdfs(
                folder,
                BatchOptions(output_folder=tmp_path / "results", concurrent=2),
                converter,
            )
        )

        assert summary.succeeded == 5
        assert converter.max_active == 2

    def test_sequential_by_default(self, tmp_path):
        folder = make_pdfs(tmp_path / "in", ["a.pdf", "b.pdf", "c.pdf"])
        converter = RecordingConverter()

        asyncio.run(
            batch_process_pdfs(folder, BatchOptions(output_folder=tmp_path / "results"), converter)
        )

        assert converter.max_active == 1

    def test_job_paths_and_options(self, tmp_path):
        folder = make_pdfs(tmp_path / "in", ["report.pdf"])
        out = tmp_path / "results"
        converter = RecordingConverter()

        asyncio.run(
            batch_process_pdfs(
                folder,
                BatchOptions(output_folder=out, language="ara+eng", density=150, keep_images=True),
                converter,
            )
        )

        name, options = converter.calls[0]
        assert name == "report.pdf"
        assert options.output_text == out / "report_ocr.txt"
        assert options.temp_images_folder == out / "report_temp_images"
        assert options.language == "ara+eng"
        assert options.density == 150
        assert options.keep_images is True

    def test_settings_snapshot_in_report(self, tmp_path, pdf_file):
        out = tmp_path / "results"

        summary = asyncio.run(
            batch_process_pdfs(
                pdf_file,
                BatchOptions(output_folder=out, image_format="jpeg", concurrent=3),
                RecordingConverter(),
            )
        )

        assert summary.settings.image_format == "jpeg"
        assert summary.settings.concurrent == 3
        report = summary.report_path.read_text(encoding="utf-8")
        assert "Image Format: jpeg" in report
        assert "Concurrent: 3" in report
        assert "Success Rate: 100.0%" in report

    def test_no_documents(self, tmp_path):
        folder = tmp_path / "empty"
        folder.mkdir()

        with pytest.raises(NoDocumentsFoundError):
            asyncio.run(
                batch_process_pdfs(
                    folder, BatchOptions(output_folder=tmp_path / "results"), RecordingConverter()
                )
            )

        assert not (tmp_path / "results").exists()

    def test_invalid_input(self, tmp_path):
        with pytest.raises(InvalidInputError):
            asyncio.run(
                batch_process_pdfs(
                    tmp_path / "absent",
                    BatchOptions(output_folder=tmp_path / "results"),
                    RecordingConverter(),
                )
            )

    def test_same_stem_different_case(self, tmp_path):
        folder = make_pdfs(tmp_path / "in", ["x.pdf", "x.PDF"])
        out = tmp_path / "results"
        converter = RecordingConverter()

        summary = asyncio.run(
            batch_process_pdfs(folder, BatchOptions(output_folder=out, concurrent=2), converter)
        )

        assert summary.succeeded == 2
        outputs = {result.output_path for result in summary.successes}
        assert outputs == {out / "x_ocr.txt", out / "x_2_ocr.txt"}
        assert all(path.exists() for path in outputs)

    def test_real_pipeline_with_vanished_source(self, tmp_path):
        folder = make_pdfs(tmp_path / "in", ["a.pdf", "b.pdf", "z_gone.pdf"])
        out = tmp_path / "results"
        rasterizer = FakeRasterizer(pages=2)
        engine = FakeEngine()

        async def converter(pdf_path, options):
            if pdf_path.name == "a.pdf":
                (folder / "z_gone.pdf").unlink()
            return await convert_pdf_to_text(pdf_path, options, rasterizer, engine)

        summary = asyncio.run(
            batch_process_pdfs(folder, BatchOptions(output_folder=out, concurrent=2), converter)
        )

        assert summary.succeeded == 2
        assert summary.failed == 1
        assert [r.input for r in summary.failures] == ["z_gone.pdf"]
        assert (out / "a_ocr.txt").read_text(encoding="utf-8").count("=== PAGE") == 2
        assert not (out / "a_temp_images").exists()
        assert len(engine.sessions) == 2

        report = summary.report_path.read_text(encoding="utf-8")
        assert "z_gone.pdf" in report
        assert "PDF file not found" in report
