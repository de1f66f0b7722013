import asyncio
import os
import sys
import threading
import traceback
from pathlib import Path

from aoc.aoc_runtime import ScriptRunner
from aoc.aoc_printer import Printer

DEFAULT_RECURSION_LIMIT = 20000
# Deep AOC recursion nests Python frames; give the interpreter thread room for them.
THREAD_STACK_SIZE = 512 * 1024 * 1024


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


async def run_script_file(file_path: str) -> int:
    """Run an AOC script file non-interactively and return the exit status."""
    runner = ScriptRunner(stdin=sys.stdin.buffer, stdout=sys.stdout.buffer)
    try:
        result = await runner.run_file(file_path)
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        return 1
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return 1
    return 0


async def main(argv=None) -> int:
    """Run a script file when provided, otherwise start the interactive REPL."""
    argv = sys.argv[1:] if argv is None else argv
    if argv and not argv[0].startswith("-"):
        return await run_script_file(argv[0])

    print("AOC REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    # input() reads the lines that follow, like the prompt does
    runner = ScriptRunner(stdin=sys.stdin, stdout=None)
    printer = Printer()
    runner.source_dir = str(Path.cwd())

    while True:
        try:
            raw = await ainput(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            result = await runner.handle_script(line)

            # Output is collected rather than streamed so it lands in order with the echo
            if result.output:
                print(result.output, end="")

            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue

            if result.value is not None:
                print(printer.describe(result.value))

        except EOFError:
            print("\nExiting.")
            break
    return 0


def configure_recursion():
    limit = int(os.environ.get("AOC_RECURSION_LIMIT", DEFAULT_RECURSION_LIMIT))
    sys.setrecursionlimit(limit)
    threading.stack_size(THREAD_STACK_SIZE)


def run(argv=None) -> int:
    """Run main() on a thread with a large stack and return its exit status."""
    status = [0]

    def target():
        try:
            status[0] = asyncio.run(main(argv))
        except BaseException:
            print("Internal error:", file=sys.stderr)
            traceback.print_exc()
            status[0] = 1

    configure_recursion()
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    try:
        thread.join()
    except KeyboardInterrupt:
        print("\nExiting.")
        return 130
    return status[0]


if __name__ == "__main__":
    sys.exit(run())
