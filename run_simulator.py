#!/usr/bin/env python3
"""Runner script to start the simulator."""
import os
import sys
import subprocess

script_dir = os.path.dirname(os.path.abspath(__file__))

# Make the backend package and the simulator importable
env = dict(os.environ)
env["PYTHONPATH"] = os.pathsep.join(
    [os.path.join(script_dir, "backend"), script_dir, env.get("PYTHONPATH", "")]
)

# Set environment
env.setdefault("BACKEND_URL", "http://localhost:8000")

# Run simulator
subprocess.run([
    sys.executable, "-m", "simulator.simulate",
    "--speed", "5",
    "--minutes", "3",
], cwd=script_dir, env=env)
