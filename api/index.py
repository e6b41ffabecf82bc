"""
Serverless entry point for the Complaint Escalation API

Timer-driven sweeps are disabled here; an external cron calls
POST /escalations/sweep instead.
"""
import sys
import os

# Add parent directory to path
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if parent_dir not in sys.path:
    sys.path.insert(0, parent_dir)

os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("SLA_CONFIG_PATH", "/tmp/escalation_config.yaml")
os.environ.setdefault("ESCALATION_SWEEP_INTERVAL", "0")

from mangum import Mangum
from src.main import app

# Lambda handler; the lifespan still wires the engine, the scheduler stays stopped
handler = Mangum(app, lifespan="auto")
