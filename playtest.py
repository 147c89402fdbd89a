import subprocess
import json
import sys
import os
import time

# Live smoke test against Raindrop.io. Needs `raindrop-client configure` and
# `raindrop-client login` to have been run first.
PYTHON_CMD = ["uv", "run", "python", "-m", "raindrop_client.main", "--format", "json"]
ENV = os.environ.copy()
# Ensure src is in PYTHONPATH so python -m raindrop_client.main works
ENV["PYTHONPATH"] = os.path.join(os.getcwd(), "src") + os.pathsep + ENV.get("PYTHONPATH", "")

PLAYTEST_TAG = "raindrop-client-playtest"


def log(msg, color="white"):
    colors = {
        "green": "\033[92m",
        "red": "\033[91m",
        "yellow": "\033[93m",
        "blue": "\033[94m",
        "reset": "\033[0m"
    }
    print(f"{colors.get(color, '')}{msg}{colors['reset']}")


def run_client(args):
    log(f"Running: {' '.join(args)}", "blue")
    result = subprocess.run(PYTHON_CMD + args, capture_output=True, text=True, env=ENV)

    output = result.stdout.strip()
    if result.returncode != 0:
        log(f"Command failed with code {result.returncode}", "red")
        log(f"STDERR: {result.stderr.strip()}", "red")
        log(f"STDOUT: {output}", "red")
        raise Exception("Command failed")

    try:
        return json.loads(output)
    except json.JSONDecodeError:
        log(f"Raw Output: {output}", "red")
        raise Exception("Invalid JSON output")


def main():
    log("=== Starting raindrop-client Playtest ===", "yellow")

    try:
        # 1. Token check
        log("\n--- Listing Root Collections ---")
        roots = run_client(["collection", "list"])
        if not roots["result"]:
            raise Exception(roots.get("errorMessage") or "collection list returned result=false")
        log(f"Found {len(roots['items'])} root collections", "green")

        # 2. Create a collection
        log("\n--- Creating Collection ---")
        col = run_client(["collection", "create", "Raindrop_Client_Playtest"])
        collection_id = col["item"]["_id"]
        log(f"Created Collection ID: {collection_id}", "green")

        # 3. Add a bookmark from a bare link
        log("\n--- Adding Bookmark ---")
        bm = run_client(["raindrop", "add", "https://www.python.org"])
        log(f"Added '{bm['item'].get('title')}' (ID: {bm['item']['_id']})", "green")

        # 4. Tag search
        log("\n--- Searching by Tag ---")
        time.sleep(2)  # Give search index a moment
        tagged = run_client(["raindrop", "tagged", PLAYTEST_TAG])
        log(f"Found {len(tagged['items'])} items tagged '{PLAYTEST_TAG}'", "green")

        # 5. Tags
        log("\n--- Listing Tags ---")
        tags = run_client(["tag", "list"])
        log(f"Found {len(tags['items'])} tags", "green")
    except Exception as e:
        log(f"\n❌ TEST FAILED: {e}", "red")
        sys.exit(1)

    log("\n✨ Playtest Completed Successfully! ✨", "green")


if __name__ == "__main__":
    main()
