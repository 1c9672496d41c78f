#!/usr/bin/env python3
"""
S3 Log Shipper - Main Application
Runs the shipper as a standalone service

Watches the configured log folder (written by another process) and ships
closed log files to S3 at most once per period.
"""

import logging
import signal
import sys
import time

from s3_log_shipper.config_manager import ConfigManager
from s3_log_shipper.file_monitor import FolderWatcher
from s3_log_shipper.file_selector import DEFAULT_LOG_SUFFIX
from s3_log_shipper.sink import S3Sink
from s3_log_shipper.upload_manager import UploadStatus

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = '/etc/s3-log-shipper/config.yaml'


class LogShipperSystem:
    """
    Main system coordinator.

    Coordinates:
    - Configuration management (config_manager)
    - Folder activity watching (file_monitor)
    - Debounced S3 shipping (sink)

    Architecture:
    1. Folder Watcher sees log file activity -> sink.notify()
    2. Scheduler runs an upload pass when the period has elapsed
    3. Closed files are uploaded to S3 and removed locally

    Example:
        >>> system = LogShipperSystem('/etc/s3-log-shipper/config.yaml')
        >>> system.start()
        >>> # ... system runs ...
        >>> system.stop()

    Attributes:
        config (ConfigManager): Configuration manager
        sink (S3Sink): Debounced shipper
        watcher (FolderWatcher): Folder activity source, None if disabled
    """

    def __init__(self, config_path: str, **sink_overrides):
        """
        Initialize the system. Does not start watching - call start().

        Args:
            config_path: Path to configuration file
            **sink_overrides: Extra S3Sink arguments (s3_client, transfer_factory)

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigValidationError: If config is invalid
        """
        logger.info("Initializing S3 Log Shipper...")

        self.config = ConfigManager(config_path)
        self.sink = S3Sink.from_config(self.config, **sink_overrides)
        self.upload_on_start = self.config.get('upload.upload_on_start', True)

        self.watcher = None
        if self.sink.enabled and self.config.get('watch.enabled', True):
            self.watcher = FolderWatcher(
                self.config.get('log_file_folder'),
                self.sink.notify,
                log_suffix=self.config.get('upload.log_suffix', DEFAULT_LOG_SUFFIX),
            )

        self._running = False

    def start(self):
        """
        Start watching and optionally trigger an initial pass.

        Note:
            Safe to call multiple times - will not start if already running
        """
        if self._running:
            logger.warning("Already running")
            return

        logger.info("Starting S3 Log Shipper...")

        if self.watcher:
            self.watcher.start()

        if self.upload_on_start:
            # Files left over from before the restart are shipped right away
            self.sink.notify()

        self._running = True
        logger.info("System started successfully")

    def stop(self):
        """Stop watching, drain pending signals and stop the scheduler."""
        if not self._running:
            return

        logger.info("Shutting down...")
        self._running = False

        if self.watcher:
            self.watcher.stop()

        self.sink.close()
        logger.info("Shutdown complete")

    def run_once(self) -> bool:
        """
        Run a single upload pass synchronously.

        Returns:
            bool: True if no upload failed
        """
        if not self.sink.enabled:
            logger.error("Sink is disabled, nothing to do")
            return False

        outcomes = self.sink.check_files_to_upload()
        failed = [o for o in outcomes if o.status is UploadStatus.UPLOAD_FAILED]
        return not failed


def signal_handler(signum, frame):
    """
    Handle shutdown signals (SIGTERM, SIGINT).

    Note on SIGHUP:
    - SIGHUP triggers config validation but does NOT apply changes
    - SIGHUP is handled by ConfigManager, not this handler
    """
    logger.info(f"Received signal {signum}")
    if 'system' in globals():
        system.stop()
    sys.exit(0)


def main():
    """
    Main entry point for S3 Log Shipper.

    Command-line arguments:
        --config: Path to configuration file
        --test-config: Test configuration and exit
        --once: Run one upload pass and exit
        --log-level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    import argparse

    parser = argparse.ArgumentParser(description='S3 Log Shipper')
    parser.add_argument(
        '--config',
        default=DEFAULT_CONFIG_PATH,
        help='Path to configuration file'
    )
    parser.add_argument(
        '--test-config',
        action='store_true',
        help='Test configuration and exit'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Upload closed log files once and exit'
    )
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level'
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s [%(name)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if args.test_config:
        try:
            config = ConfigManager(args.config)
            logger.info("Configuration valid!")
            logger.info(f"Log folder: {config.get('log_file_folder')}")
            logger.info(f"S3 bucket: {config.get('s3.bucket')}")
            logger.info(f"S3 region: {config.get('s3.region')}")
            logger.info(f"S3 path: {config.get('s3.path')}")
            logger.info(f"File prefix: {config.get('s3.file_prefix')}")
            logger.info(f"Period: {config.get('upload.period_seconds', 3600)} seconds")
            sys.exit(0)
        except Exception as e:
            logger.error(f"Configuration error: {e}")
            sys.exit(1)

    global system

    try:
        system = LogShipperSystem(args.config)

        if args.once:
            success = system.run_once()
            system.sink.close()
            sys.exit(0 if success else 1)

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGHUP, system.config.handle_reload_signal)

        system.start()

        logger.info("Running... Press Ctrl+C to stop")
        while True:
            time.sleep(1)

    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        system.stop()
    except Exception as e:
        logger.error(f"FATAL ERROR: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
