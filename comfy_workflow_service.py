#!/usr/bin/env python3
"""
ComfyUI Workflow Service
Submit a workflow JSON file to a ComfyUI engine, wait for it to finish and
save the produced images/audio to the configured output directory.
"""

import argparse
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from comfy_media import EngineHttpClient, OutputFormat, WorkflowJobClient, WorkflowJobError
from comfy_media.config import ServiceConfig, load_config
from comfy_media.organizer import OutputOrganizer
from comfy_media.utils import ConfigError


class ComfyWorkflowService:
    """Runs workflow jobs using settings from a JSON config file"""

    def __init__(self, config_path: str, overrides: Optional[Dict[str, Any]] = None):
        self.config_path = config_path
        self.config = self.load_config(overrides or {})
        self.setup_logging()
        self.logger = logging.getLogger(__name__)

    def load_config(self, overrides: Dict[str, Any]) -> ServiceConfig:
        """Load configuration and apply command line overrides"""
        config = load_config(self.config_path)

        output_format = overrides.get("output_format")
        jpeg_quality = overrides.get("jpeg_quality")
        if output_format or jpeg_quality is not None:
            name = output_format or config.output_format.name
            if jpeg_quality is None:
                jpeg_quality = getattr(config.output_format, "quality", None)
            try:
                config = replace(config, output_format=OutputFormat.from_name(name, jpeg_quality))
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc

        timeout = overrides.get("timeout_minutes")
        if timeout is not None:
            if timeout <= 0:
                raise ConfigError("--timeout must be a positive number of minutes")
            config = replace(config, timeout_minutes=timeout)

        output_dir = overrides.get("output_directory")
        if output_dir:
            config = replace(config, output_directory=Path(output_dir).resolve())
        return config

    def setup_logging(self):
        """Setup logging configuration"""
        log_file = self.config.log_file
        log_level = getattr(logging, self.config.log_level, logging.INFO)

        # Create logs directory if it doesn't exist
        os.makedirs(log_file.parent, exist_ok=True)

        logging.basicConfig(
            level=log_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.FileHandler(log_file),
                logging.StreamHandler()
            ]
        )

    def create_http_client(self) -> EngineHttpClient:
        self.logger.info(f"Executing with API URL: {self.config.api_url}")
        return EngineHttpClient(
            self.config.api_url,
            self.config.api_key,
            timeout=self.config.request_timeout_seconds,
            pool_size=self.config.max_workers,
        )

    def create_job_client(self, http: EngineHttpClient) -> WorkflowJobClient:
        return WorkflowJobClient(http, max_workers=self.config.max_workers)

    def test_configuration(self) -> bool:
        """Check that the configured ComfyUI engine is reachable"""
        self.logger.info("Testing service configuration...")
        with self.create_http_client() as http:
            try:
                self.create_job_client(http).check_connection()
            except WorkflowJobError as exc:
                self.logger.error(f"Connectivity check failed: {exc}")
                return False
        self.logger.info("Configuration test passed!")
        return True

    def run_workflow(self, workflow_path: str) -> bool:
        """Run one workflow file end to end and save its artifacts"""
        path = Path(workflow_path)
        try:
            workflow_text = path.read_text(encoding="utf-8")
        except OSError as exc:
            self.logger.error(f"Could not read workflow file {path}: {exc}")
            return False

        started_at = datetime.now()
        output_format = self.config.output_format
        self.logger.info(
            f"Running workflow {path.name} (format={output_format.name}, "
            f"timeout={self.config.timeout_minutes}m)"
        )

        with self.create_http_client() as http:
            client = self.create_job_client(http)
            try:
                result = client.execute(workflow_text, output_format, self.config.timeout_minutes)
            except WorkflowJobError as exc:
                self.logger.error(f"ComfyUI API Error ({exc.stage}): {exc}")
                return False

        organizer = OutputOrganizer(self.config.output_directory)
        saved = organizer.save_records(result.job.id, result.records)

        for record in result.failures:
            self.logger.warning(f"Artifact {record.filename} failed: {record.error}")

        session_data = {
            "timestamp": started_at.isoformat(),
            "finished_at": datetime.now().isoformat(),
            "workflow": str(path),
            "prompt_id": result.job.id,
            "output_format": output_format.name,
            "artifacts": [
                {key: value for key, value in record.to_dict().items() if key != "data"}
                for record in result.records
            ],
            "saved_files": [str(p) for p in saved],
        }
        organizer.log_session(session_data)

        self.logger.info(
            f"Workflow {path.name} completed: {len(saved)} saved, "
            f"{len(result.failures)} failed"
        )
        return True


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='ComfyUI Workflow Service')
    parser.add_argument('config_file', nargs='?', default='comfy_workflow_config.json',
                        help='Configuration file path')
    parser.add_argument('--workflow', help='Path to the workflow JSON file (API format)')
    parser.add_argument('--format', dest='output_format', choices=['jpeg', 'png', 'wav'],
                        help='Output format for fetched artifacts')
    parser.add_argument('--jpeg-quality', type=int,
                        help='JPEG quality (1-100), only used with --format jpeg')
    parser.add_argument('--timeout', type=int, dest='timeout_minutes',
                        help='Maximum time in minutes to wait for completion')
    parser.add_argument('--output-dir', dest='output_directory',
                        help='Directory for saved artifacts and session logs')
    parser.add_argument('--test', action='store_true',
                        help='Test the connection to ComfyUI and exit')

    args = parser.parse_args()

    if not args.test and not args.workflow:
        parser.error('--workflow is required unless --test is given')

    if not os.path.exists(args.config_file):
        print(f"ERROR: Configuration file not found: {args.config_file}")
        sys.exit(1)

    overrides = {
        "output_format": args.output_format,
        "jpeg_quality": args.jpeg_quality,
        "timeout_minutes": args.timeout_minutes,
        "output_directory": args.output_directory,
    }
    try:
        service = ComfyWorkflowService(args.config_file, overrides)
    except ConfigError as exc:
        print(f"ERROR: {exc}")
        sys.exit(1)

    if args.test:
        success = service.test_configuration()
    else:
        success = service.run_workflow(args.workflow)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
