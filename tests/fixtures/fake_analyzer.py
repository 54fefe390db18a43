"""Stand-in analyzer: one node per file, first file calls all the others.

Environment knobs:
  FAKE_ANALYZER_MODE  ok | fail | sleep | truncated | dangling
  FAKE_ANALYZER_ARGS  write received arguments (one per line) to this file
"""

import json
import os
import sys
import time

mode = os.environ.get("FAKE_ANALYZER_MODE", "ok")
files = sys.argv[1:]

args_log = os.environ.get("FAKE_ANALYZER_ARGS")
if args_log:
    with open(args_log, "w", encoding="utf-8") as f:
        f.write("\n".join(files))

if mode == "fail":
    sys.stderr.write("panic: cannot parse input\n")
    sys.exit(3)
if mode == "sleep":
    time.sleep(30)

nodes = []
edges = []
for i, path in enumerate(files):
    label = os.path.splitext(os.path.basename(path))[0]
    nodes.append({"id": path, "label": label, "file": path, "line": i + 1})
    if i:
        edges.append({"callerId": files[0], "calleeId": path})

if mode == "dangling":
    edges.append({"callerId": files[0], "calleeId": "missing"})

doc = json.dumps({"nodes": nodes, "edges": edges})
if mode == "truncated":
    doc = doc[: len(doc) // 2]
sys.stdout.write(doc)
