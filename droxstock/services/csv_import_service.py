"""CSV import pipeline for Daparto catalog files.

One pipeline serves both execution modes. ``submit`` accepts an upload and
either runs it inline (``mode="sync"``) or parks the file in MinIO and hands
it to a Celery worker (``mode="async"``), which calls ``process_job``.

Rows flow through parse → duplicate resolution → batched writes. Each batch
commits on its own unless ``rollback_on_error`` is set, in which case the
whole import is one transaction and the first failure undoes everything.
"""

import csv
import logging
import os
import re
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from itertools import islice
from typing import Optional, List, Dict, Any, Tuple, Iterator, Callable

import duckdb
from kombu.exceptions import OperationalError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from droxstock.core.config import settings
from droxstock.core.exceptions import InvalidInputError, StorageError
from droxstock.models import Daparto
from droxstock.schemas.schemas import CsvImportOptions
from droxstock.services.duckdb_engine import DuckDBEngine
from droxstock.services.file_service import FileService, file_service
from droxstock.services.job_status_service import JobStatus, JobStatusService, job_status_service
from droxstock.services.notification_service import NotificationService, notification_service

logger = logging.getLogger("droxstock.csv_import")

CSV_COLUMNS = (
    "interne_artikelnummer", "preis", "zustand", "tiltle",
    "teilemarke_teilenummer", "pfand", "versandklasse", "lieferzeit",
)
ALLOWED_EXTENSIONS = (".csv", ".txt")
ALLOWED_CONTENT_TYPES = ("text/csv", "text/plain")
MAX_PRICE = Decimal("999999.99")
INTEGER_RANGES = {
    "zustand": (0, 5),
    "pfand": (0, 1000),
    "versandklasse": (0, 10),
    "lieferzeit": (0, 365),
}
STAT_KEYS = (
    "total_rows", "processed_rows", "successful_rows", "failed_rows",
    "updated_rows", "new_rows", "duplicate_rows", "skipped_rows",
)
_INTEGER = re.compile(r"^[+-]?\d+$")


# ---- Row parsing ----
def _parse_text(raw: Dict[str, str], field: str, max_length: int,
                required: bool, errors: List[str]) -> Optional[str]:
    value = (raw.get(field) or "").strip()
    if not value:
        if required:
            errors.append(f"{field} is required")
        return None
    if len(value) > max_length:
        errors.append(f"{field} may not be greater than {max_length} characters")
    return value


def _parse_price(value: Optional[str], errors: List[str]) -> Optional[Decimal]:
    value = (value or "").strip()
    if not value:
        errors.append("preis is required")
        return None
    if "," in value and "." not in value:
        value = value.replace(",", ".")
    try:
        price = Decimal(value)
    except InvalidOperation:
        errors.append("preis must be a number")
        return None
    if not price.is_finite():
        errors.append("preis must be a number")
        return None
    if price < 0:
        errors.append("preis must be at least 0")
        return None
    if price > MAX_PRICE:
        errors.append(f"preis may not be greater than {MAX_PRICE}")
        return None
    return price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _parse_int(field: str, value: Optional[str], errors: List[str],
               default: Optional[int] = None) -> Optional[int]:
    value = (value or "").strip()
    if not value:
        if default is None:
            errors.append(f"{field} is required")
        return default
    if not _INTEGER.match(value):
        errors.append(f"{field} must be an integer")
        return None
    low, high = INTEGER_RANGES[field]
    # bounded before int() so very long digit strings never reach the converter
    if len(value.lstrip("+-").lstrip("0")) > len(str(high)):
        errors.append(f"{field} must be between {low} and {high}")
        return None
    number = int(value)
    if not low <= number <= high:
        errors.append(f"{field} must be between {low} and {high}")
        return None
    return number


def parse_row(raw: Dict[str, str]) -> Tuple[Dict[str, Any], List[str]]:
    """Turn one raw CSV row into typed record fields plus every rule it breaks."""
    errors: List[str] = []
    data = {
        "interne_artikelnummer": _parse_text(raw, "interne_artikelnummer", 100, True, errors),
        "tiltle": _parse_text(raw, "tiltle", 255, False, errors),
        "teilemarke_teilenummer": _parse_text(raw, "teilemarke_teilenummer", 255, True, errors),
        "preis": _parse_price(raw.get("preis"), errors),
        "zustand": _parse_int("zustand", raw.get("zustand"), errors),
        "pfand": _parse_int("pfand", raw.get("pfand"), errors, default=0),
        "versandklasse": _parse_int("versandklasse", raw.get("versandklasse"), errors),
        "lieferzeit": _parse_int("lieferzeit", raw.get("lieferzeit"), errors),
    }
    return data, errors


def iter_data_rows(path: str, delimiter: str) -> Iterator[Tuple[int, List[str]]]:
    """Yield ``(line_number, cells)`` for every non-blank row after the header."""
    with open(path, newline="", encoding="utf-8-sig") as fh:
        reader = csv.reader(fh, delimiter=delimiter)
        next(reader, None)
        for cells in reader:
            if not cells or all(not cell.strip() for cell in cells):
                continue
            yield reader.line_num, cells


class ImportAborted(Exception):
    """Stops a ``rollback_on_error`` import at its first failure."""

    def __init__(self, row: int, reason: str):
        self.row = row
        super().__init__(f"Import rolled back at row {row}: {reason}")


class CsvImportRun:
    """Counters and row errors of a single import."""

    def __init__(self, db: Session, options: CsvImportOptions, header: List[str],
                 on_progress: Optional[Callable[[Dict[str, int]], None]] = None):
        self.db = db
        self.options = options
        self.header = header
        self.on_progress = on_progress
        self.stats = dict.fromkeys(STAT_KEYS, 0)
        self.errors: List[Dict[str, Any]] = []
        self.errors_truncated = False
        self.rolled_back = False
        self.abort_reason: Optional[str] = None
        self._seen_keys = set()

    # ---- Bookkeeping ----
    def _record_error(self, row: int, errors: List[str], action: str, data: Dict[str, Any]) -> None:
        if len(self.errors) < settings.CSV_MAX_REPORTED_ERRORS:
            self.errors.append({"row": row, "errors": errors, "action": action, "data": data})
        else:
            self.errors_truncated = True

    def _fail(self, row: int, errors: List[str], action: str, data: Dict[str, Any],
              abort: bool = True) -> None:
        self.stats["failed_rows"] += 1
        self._record_error(row, errors, action, data)
        if abort and self.options.rollback_on_error:
            raise ImportAborted(row, "; ".join(errors))

    def _skip_duplicate(self) -> None:
        self.stats["duplicate_rows"] += 1
        self.stats["skipped_rows"] += 1
        self.stats["successful_rows"] += 1

    # ---- Processing ----
    def execute(self, path: str) -> None:
        rows = iter_data_rows(path, self.options.delimiter)
        try:
            while True:
                chunk = list(islice(rows, self.options.batch_size))
                if not chunk:
                    break
                self._process_batch(chunk)
                if self.on_progress:
                    self.on_progress(dict(self.stats))
            if self.options.rollback_on_error:
                self.db.commit()
        except ImportAborted as e:
            self.db.rollback()
            self.rolled_back = True
            self.abort_reason = str(e)
            self.stats["successful_rows"] -= self.stats["new_rows"] + self.stats["updated_rows"]
            self.stats["new_rows"] = 0
            self.stats["updated_rows"] = 0
            logger.warning("%s", self.abort_reason)

    def _process_batch(self, chunk: List[Tuple[int, List[str]]]) -> None:
        parsed = []
        for row_number, cells in chunk:
            self.stats["processed_rows"] += 1
            raw = dict(zip(self.header, cells))
            if len(cells) != len(self.header):
                self._fail(row_number, [f"Row has {len(cells)} columns, expected {len(self.header)}"],
                           "validation_failed", raw)
                continue
            data, errors = parse_row(raw)
            if errors:
                self._fail(row_number, errors, "validation_failed", raw)
                continue
            parsed.append((row_number, data, raw))

        keys = {data["interne_artikelnummer"] for _, data, _ in parsed}
        existing = {}
        if keys:
            existing = {
                record.interne_artikelnummer: record
                for record in self.db.query(Daparto).filter(Daparto.interne_artikelnummer.in_(keys))
            }

        writes = []
        for row_number, data, raw in parsed:
            key = data["interne_artikelnummer"]
            if key in self._seen_keys:
                if self.options.skip_duplicates:
                    self._skip_duplicate()
                else:
                    self.stats["duplicate_rows"] += 1
                    self._fail(row_number, ["Duplicate record found within the same CSV file"],
                               "duplicate_in_file", raw)
                continue

            record = existing.get(key)
            if record is not None and not self.options.update_existing:
                if self.options.skip_duplicates:
                    self._skip_duplicate()
                else:
                    self.stats["duplicate_rows"] += 1
                    self._fail(row_number, ["Record already exists"], "duplicate_found", raw)
                continue

            self._seen_keys.add(key)
            writes.append((row_number, data, raw, record))

        self._write_batch(writes)

    def _write_batch(self, writes: List[Tuple[int, Dict[str, Any], Dict[str, str], Optional[Daparto]]]) -> None:
        if not writes:
            return
        try:
            for _, data, _, record in writes:
                if record is None:
                    self.db.add(Daparto(**data))
                else:
                    for field, value in data.items():
                        setattr(record, field, value)
                    record.deleted_at = None
            if self.options.rollback_on_error:
                self.db.flush()
            else:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            first_row = writes[0][0]
            if self.options.rollback_on_error:
                raise ImportAborted(first_row, f"batch write failed: {e}")
            logger.error("Batch starting at row %s failed: %s", first_row, e)
            for row_number, data, raw, _ in writes:
                self._seen_keys.discard(data["interne_artikelnummer"])
                self._fail(row_number, [f"Batch write failed: {e.__class__.__name__}"],
                           "batch_failed", raw, abort=False)
            return

        for _, _, _, record in writes:
            self.stats["updated_rows" if record is not None else "new_rows"] += 1
            self.stats["successful_rows"] += 1


class CsvImportService:
    """Accepts uploads and runs the import pipeline in either mode."""

    def __init__(
        self,
        files: Optional[FileService] = None,
        jobs: Optional[JobStatusService] = None,
        notifier: Optional[NotificationService] = None,
        dispatcher: Optional[Callable[..., Any]] = None,
    ):
        self.files = files or file_service
        self.jobs = jobs or job_status_service
        self.notifier = notifier or notification_service
        self._dispatcher = dispatcher

    # ---- Acceptance ----
    @staticmethod
    def validate_upload(file_name: str, content_type: Optional[str], size_bytes: int) -> List[str]:
        reasons = []
        if os.path.splitext(file_name or "")[1].lower() not in ALLOWED_EXTENSIONS:
            reasons.append("The file must be a file of type: csv, txt.")
        media_type = (content_type or "").split(";")[0].strip().lower()
        if media_type and media_type not in ALLOWED_CONTENT_TYPES:
            reasons.append(f"Unsupported content type '{media_type}'.")
        if size_bytes <= 0:
            reasons.append("The file is empty.")
        elif size_bytes > settings.CSV_MAX_UPLOAD_MB * 1024 * 1024:
            reasons.append(f"The file may not be greater than {settings.CSV_MAX_UPLOAD_MB} MB.")
        return reasons

    @staticmethod
    def inspect_file(path: str, delimiter: str) -> Dict[str, Any]:
        """Check the header and count data rows.

        Raises:
            InvalidInputError: Header differs from the expected columns, no data
                rows, or the file is not UTF-8 text.
        """
        reasons = []
        try:
            with open(path, newline="", encoding="utf-8-sig") as fh:
                header = [cell.strip() for cell in next(csv.reader(fh, delimiter=delimiter), [])]
            total_rows = sum(1 for _ in iter_data_rows(path, delimiter))
        except UnicodeDecodeError:
            raise InvalidInputError(
                "The uploaded file was rejected", field="csv_file",
                details={"errors": ["The file must be UTF-8 encoded."]},
            )
        except csv.Error as e:
            raise InvalidInputError(
                "The uploaded file was rejected", field="csv_file",
                details={"errors": [f"The file is not valid CSV: {e}"]},
            )

        missing = [c for c in CSV_COLUMNS if c not in header]
        unexpected = [c for c in header if c not in CSV_COLUMNS]
        if missing:
            reasons.append(f"Missing columns: {', '.join(missing)}.")
        if unexpected:
            reasons.append(f"Unexpected columns: {', '.join(unexpected)}.")
        if len(header) != len(set(header)):
            reasons.append("Header contains duplicate columns.")
        if not reasons and total_rows == 0:
            reasons.append("The file contains no data rows.")
        if reasons:
            raise InvalidInputError(
                "The uploaded file was rejected", field="csv_file", details={"errors": reasons}
            )
        return {"header": header, "total_rows": total_rows}

    def accept(self, path: str, file_name: str, content_type: Optional[str],
               size_bytes: int, options: CsvImportOptions) -> Dict[str, Any]:
        reasons = self.validate_upload(file_name, content_type, size_bytes)
        if reasons:
            raise InvalidInputError(
                "The uploaded file was rejected", field="csv_file", details={"errors": reasons}
            )
        inspection = self.inspect_file(path, options.delimiter)
        return {
            "name": file_name,
            "size": size_bytes,
            "content_type": content_type,
            "total_rows": inspection["total_rows"],
        }

    # ---- Pipeline ----
    def run_import(
        self,
        db: Session,
        path: str,
        file_info: Dict[str, Any],
        options: CsvImportOptions,
        job_id: Optional[str] = None,
        on_progress: Optional[Callable[[Dict[str, int]], None]] = None,
    ) -> Dict[str, Any]:
        """Run every row of ``path`` through the pipeline and build the report."""
        started_at = datetime.now(timezone.utc)
        started = time.perf_counter()
        inspection = self.inspect_file(path, options.delimiter)
        logger.info(
            "Importing %s (%d rows, batch_size=%d, job=%s)",
            file_info.get("name"), inspection["total_rows"], options.batch_size, job_id,
        )

        run = CsvImportRun(db, options, inspection["header"], on_progress)
        run.stats["total_rows"] = inspection["total_rows"]
        run.execute(path)

        duration = time.perf_counter() - started
        report = self.build_report(
            run, file_info, job_id, started_at, duration,
            self.profile_columns(path, options.delimiter),
        )
        logger.info("Finished import of %s: %s", file_info.get("name"), run.stats)
        return report

    @staticmethod
    def profile_columns(path: str, delimiter: str) -> Dict[str, Any]:
        try:
            return DuckDBEngine.profile_csv(path, delimiter)["columns"]
        except duckdb.Error as e:
            logger.warning("Column profiling failed for %s: %s", path, e)
            return {}

    @staticmethod
    def build_report(run: CsvImportRun, file_info: Dict[str, Any], job_id: Optional[str],
                     started_at: datetime, duration: float,
                     column_profile: Dict[str, Any]) -> Dict[str, Any]:
        stats = run.stats
        total = stats["total_rows"]
        quality = round(stats["successful_rows"] / total * 100, 2) if total else 0.0
        success = (
            stats["successful_rows"] > 0 and stats["failed_rows"] == 0 and not run.rolled_back
        )

        if run.rolled_back:
            message = run.abort_reason
        elif success:
            message = "CSV file processed successfully"
        else:
            message = "CSV file processed with errors"

        recommendations = []
        if quality < 80:
            recommendations.append(
                "Data quality is below 80%. Review the failed rows and correct the source data."
            )
        if stats["failed_rows"] > 0:
            recommendations.append(
                f"{stats['failed_rows']} row(s) failed. Check the error details and re-upload the corrected rows."
            )
        if stats["duplicate_rows"] > 0:
            recommendations.append(
                "Duplicate records were found. Enable update_existing to refresh them "
                "or skip_duplicates to ignore them."
            )
        if duration > 30:
            recommendations.append(
                "Processing took more than 30 seconds. Consider splitting large files."
            )
        if run.rolled_back:
            recommendations.append(
                "No rows were saved. Fix the failing row or disable rollback_on_error "
                "to import the valid rows."
            )

        report = {
            "success": success,
            "message": message,
            "file_info": file_info,
            "processing_stats": dict(stats),
            "rolled_back": run.rolled_back,
            "validation_summary": {
                "data_quality_score": quality,
                "validation_errors": stats["failed_rows"],
                "column_profile": column_profile,
            },
            "performance": {
                "duration": round(duration, 3),
                "started_at": started_at.isoformat(),
                "finished_at": datetime.now(timezone.utc).isoformat(),
            },
            "errors": run.errors,
            "errors_truncated": run.errors_truncated,
            "recommendations": recommendations,
        }
        if job_id:
            report["job_id"] = job_id
        return report

    # ---- Modes ----
    def submit(
        self,
        db: Session,
        path: str,
        file_name: str,
        content_type: Optional[str],
        size_bytes: int,
        options: CsvImportOptions,
        user_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Accept an upload, then run it now or queue it according to ``options.mode``.

        Returns the full report in sync mode, ``{"job_id", "status", "file_info"}``
        in async mode.
        """
        file_info = self.accept(path, file_name, content_type, size_bytes, options)

        if options.mode == "sync":
            report = self.run_import(db, path, file_info, options)
            self._notify(options, file_name, report=report)
            return report

        job_id = uuid.uuid4().hex
        object_key = self.files.store_upload(path, job_id, file_name, content_type or "text/csv")
        self.jobs.set_status(job_id, JobStatus.QUEUED, file_name=file_name, user_id=user_id)
        try:
            self.dispatch(job_id, object_key, file_info, options.model_dump(mode="json"), user_id)
        except OperationalError as e:
            self.jobs.set_status(job_id, JobStatus.FAILED, error="Could not queue the import job")
            logger.error("Failed to queue CSV import job %s: %s", job_id, e)
            raise StorageError("Failed to queue the import job") from e

        logger.info("Queued CSV import job %s for %s", job_id, file_name)
        return {"job_id": job_id, "status": JobStatus.QUEUED, "file_info": file_info}

    def dispatch(self, job_id: str, object_key: str, file_info: Dict[str, Any],
                 options: Dict[str, Any], user_id: Optional[int]) -> None:
        if self._dispatcher is not None:
            self._dispatcher(job_id, object_key, file_info, options, user_id)
            return
        from droxstock.tasks.celery_app import process_csv_import
        process_csv_import.delay(job_id, object_key, file_info, options, user_id)

    def process_job(
        self,
        db: Session,
        job_id: str,
        object_key: str,
        file_info: Dict[str, Any],
        options: CsvImportOptions,
        user_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Worker side of an async import. Always leaves a terminal snapshot."""
        file_name = file_info.get("name")
        self.jobs.set_status(job_id, JobStatus.PROCESSING, file_name=file_name, user_id=user_id)

        local_path = None
        try:
            local_path = self.files.download_to_temp(object_key)
            report = self.run_import(
                db, local_path, file_info, options, job_id=job_id,
                on_progress=lambda stats: self.jobs.set_status(
                    job_id, JobStatus.PROCESSING, progress=stats
                ),
            )
        except Exception as e:
            logger.exception("CSV import job %s failed", job_id)
            self.jobs.set_status(
                job_id, JobStatus.FAILED, error=str(e),
                results={"success": False, "error": str(e), "file_name": file_name},
            )
            self._notify(options, file_name, error=str(e))
            raise
        finally:
            if local_path and os.path.exists(local_path):
                os.unlink(local_path)

        status = JobStatus.FAILED if report["rolled_back"] else JobStatus.COMPLETED
        self.jobs.set_status(
            job_id, status, results=report,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )
        self._notify(options, file_name, report=report)

        try:
            self.files.delete_object(object_key)
        except StorageError as e:
            logger.warning("Could not remove import file %s: %s", object_key, e.message)
        return report

    def _notify(self, options: CsvImportOptions, file_name: str,
                report: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> None:
        if not (options.email_notification and options.user_email):
            return
        if error is not None:
            self.notifier.send_import_failure(options.user_email, file_name, error)
        else:
            self.notifier.send_import_report(options.user_email, file_name, report)


csv_import_service = CsvImportService()
