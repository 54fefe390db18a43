"""Stand-in for `go build`: installs a launcher for fake_analyzer.py at the output path.

Environment knobs:
  FAKE_BUILD_LOG    append one line per build to this file
  FAKE_BUILD_DELAY  seconds to sleep before producing the artifact
  FAKE_BUILD_FAIL   exit 1 with a compiler-like message
"""

import os
import sys
import time

output = sys.argv[1]

log = os.environ.get("FAKE_BUILD_LOG")
if log:
    with open(log, "a", encoding="utf-8") as f:
        f.write("build\n")

time.sleep(float(os.environ.get("FAKE_BUILD_DELAY", "0")))

if os.environ.get("FAKE_BUILD_FAIL"):
    sys.stderr.write("./analyzer.go:3:1: syntax error: unexpected }\n")
    sys.exit(1)

analyzer = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fake_analyzer.py")
with open(output, "w", encoding="utf-8") as f:
    f.write(f'#!/bin/sh\nexec "{sys.executable}" "{analyzer}" "$@"\n')
os.chmod(output, 0o755)
