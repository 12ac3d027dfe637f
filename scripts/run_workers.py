#!/usr/bin/env python3
"""
Celery worker management script for LearnSync.

This script provides an easy way to start Celery workers for the group
membership queues, Flower monitoring, and to queue a hierarchy audit.
"""

import signal
import subprocess
import sys
from pathlib import Path
from typing import List

# Add the project root to the Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

from learnsync.config.settings import settings
from learnsync.core.redis import RedisManager

CELERY_APP = "learnsync.tasks.celery_app"


class WorkerManager:
    """Manage Celery workers and related services."""

    def __init__(self):
        self.processes: List[subprocess.Popen] = []

    def cleanup(self):
        """Clean up all running processes."""
        for process in self.processes:
            try:
                process.terminate()
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
        self.processes.clear()

    def check_redis(self) -> bool:
        """Check if the broker's Redis is available."""
        if RedisManager(settings.celery_broker_url).ping():
            print("✅ Redis connection successful")
            return True
        print("❌ Redis connection failed")
        print("💡 Make sure Redis is running: redis-server")
        return False

    def _spawn(self, cmd: List[str]) -> subprocess.Popen:
        print(f"   Command: {' '.join(cmd)}")
        process = subprocess.Popen(cmd)
        self.processes.append(process)
        return process

    def start_worker(self,
                     worker_name: str = "learnsync",
                     queues: List[str] = None,
                     concurrency: int = 4,
                     loglevel: str = "info") -> subprocess.Popen:
        """Start a Celery worker process."""
        queues = queues or ["default", "groups"]
        print(f"🚀 Starting worker '{worker_name}' for queues: {', '.join(queues)}")
        return self._spawn([
            "celery",
            "-A", CELERY_APP,
            "worker",
            "--hostname", f"{worker_name}@%h",
            "--queues", ",".join(queues),
            "--concurrency", str(concurrency),
            "--loglevel", loglevel,
            "--prefetch-multiplier", "1"
        ])

    def start_flower(self) -> subprocess.Popen:
        """Start Flower monitoring interface."""
        print(f"🌸 Starting Flower monitoring on port {settings.flower_port}...")
        return self._spawn([
            "celery",
            "-A", CELERY_APP,
            "flower",
            "--port", str(settings.flower_port),
            "--broker", settings.celery_broker_url,
            *(["--broker-api", settings.flower_broker_api] if settings.flower_broker_api else [])
        ])

    def wait(self):
        """Block until every process exits or Ctrl+C."""
        signal.signal(signal.SIGTERM, lambda s, f: self.cleanup())
        try:
            for process in list(self.processes):
                process.wait()
        except KeyboardInterrupt:
            print("\n🛑 Received interrupt signal")


def queue_audit(school_id: str):
    """Queue a cycle check of one school's groups."""
    from learnsync.tasks.group_tasks import verify_forest_task

    task = verify_forest_task.delay(school_id)
    print(f"📨 Queued groups.verify_forest for school {school_id}: {task.id}")


def print_usage():
    """Print script usage information."""
    print("🔧 Celery Worker Management Script")
    print("=" * 40)
    print("Usage: python scripts/run_workers.py [command]")
    print()
    print("Commands:")
    print("  worker              - Start a worker for the default and groups queues (default)")
    print("  dev                 - Start a worker and Flower monitoring")
    print("  flower              - Start only Flower monitoring")
    print("  check               - Check Redis connection")
    print("  audit <school_id>   - Queue a group hierarchy audit")


def main():
    """Main worker management function."""
    manager = WorkerManager()
    command = sys.argv[1] if len(sys.argv) > 1 else "worker"

    try:
        if command == "check":
            sys.exit(0 if manager.check_redis() else 1)

        elif command == "audit" and len(sys.argv) > 2:
            queue_audit(sys.argv[2])

        elif command in ("worker", "dev", "flower"):
            if not manager.check_redis():
                sys.exit(1)
            if command in ("worker", "dev"):
                manager.start_worker(loglevel=settings.log_level.lower())
            if command in ("dev", "flower"):
                manager.start_flower()
            manager.wait()

        elif command in ["help", "-h", "--help"]:
            print_usage()

        else:
            print(f"❌ Unknown command: {command}")
            print_usage()
            sys.exit(1)

    finally:
        manager.cleanup()


if __name__ == "__main__":
    main()
