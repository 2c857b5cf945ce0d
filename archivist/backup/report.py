"""Run summary composition and delivery."""

import smtplib
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from typing import Callable, Optional, Tuple

from .._utils import format_bytes, logger
from ..config import NotificationConfig
from .models import BackupManifest, BackupResult, RunStatus


class ReportNotifier:
    """Compose the end-of-run report and mail it, or only log it.

    Mail is skipped in dry-run and debug mode, when notifications are
    disabled, or when no recipient is configured. Delivery problems are
    logged and never raised.
    """

    def __init__(
        self,
        config: NotificationConfig,
        dry_run: bool = False,
        debug: bool = False,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self.config = config
        self.dry_run = dry_run
        self.debug = debug
        self.smtp_factory = smtp_factory

    def subject_for(self, result: BackupResult) -> str:
        if result.status == RunStatus.SUCCESS:
            template = self.config.subject_warning if result.warnings else self.config.subject_success
        else:
            template = self.config.subject_failure
        return template.replace("%date%", datetime.now().strftime("%Y-%m-%d"))

    def compose(
        self,
        result: BackupResult,
        manifest: Optional[BackupManifest] = None,
        run_path: Optional[Path] = None,
    ) -> Tuple[str, str]:
        """Build the report subject and plain-text body."""
        lines = [
            f"Backup Report - {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "=" * 50,
            "",
            f"Status: {result.status.value.upper()}",
            f"Type: {result.run_type.value.upper() if result.run_type else 'UNKNOWN'}",
            f"Duration: {result.duration} seconds",
            f"Size: {format_bytes(result.total_size)}",
        ]
        if run_path is not None:
            lines.append(f"Path: {run_path}")
        lines.append("")

        if manifest is not None and manifest.database is not None:
            db = manifest.database
            lines.extend([
                "DATABASE:",
                f"- File: {db.file}",
                f"- Size: {format_bytes(db.size)}",
                f"- Tables: {len(db.tables)}",
                f"- Rows: {db.rows:,}",
                "",
            ])

        if manifest is not None and manifest.files is not None:
            files = manifest.files
            lines.extend([
                "FILES:",
                f"- File: {files.file}",
                f"- Size: {format_bytes(files.size)}",
                f"- Files: {files.count}",
                f"- Compression: {files.compression_ratio}%",
                "",
            ])

        if result.warnings:
            lines.append("WARNINGS:")
            lines.extend(f"- {warning}" for warning in result.warnings)
            lines.append("")

        if result.errors:
            lines.append("ERRORS:")
            lines.extend(f"- {error}" for error in result.errors)

        return self.subject_for(result), "\n".join(lines).rstrip() + "\n"

    def notify(
        self,
        result: BackupResult,
        manifest: Optional[BackupManifest] = None,
        run_path: Optional[Path] = None,
    ) -> bool:
        """Compose the report and deliver it.

        Returns:
            True if a mail was sent
        """
        subject, body = self.compose(result, manifest, run_path)

        if self.dry_run or self.debug or not self.config.enabled or not self.config.recipients:
            logger.info(f"Report not mailed; subject: {subject}")
            logger.debug(f"Report:\n{body}")
            return False

        if result.status == RunStatus.SUCCESS and not self.config.notify_on_success:
            logger.info("Run succeeded; success notifications are disabled")
            return False

        return self._send(subject, body)

    def _send(self, subject: str, body: str) -> bool:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.config.from_address
        msg["To"] = ", ".join(self.config.recipients)
        msg.set_content(body)

        try:
            with self.smtp_factory(self.config.smtp_host, self.config.smtp_port, timeout=30) as server:
                if self.config.smtp_starttls:
                    server.starttls()
                if self.config.smtp_user and self.config.smtp_password:
                    server.login(self.config.smtp_user, self.config.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send backup report: {e}")
            return False

        logger.info(f"Backup report sent to {', '.join(self.config.recipients)}")
        return True
