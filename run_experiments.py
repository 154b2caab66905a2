import itertools
import subprocess
import sys

# --- DEFINITION OF EXPERIMENTS ---
# Add whatever values you want to test here
param_grid = {
    "preset": ["default", "fast"],
    "orders": [20, 60],
    "seed": [42, 101]  # Run twice to verify stability
}


def build_commands():
    keys, values = zip(*param_grid.items())
    combinations = [dict(zip(keys, v)) for v in itertools.product(*values)]
    commands = []
    for params in combinations:
        command = [sys.executable, "main.py"]
        for key, value in params.items():
            command.append(f"--{key}")
            command.append(str(value))
        run_name = "_".join(f"{k}{v}" for k, v in params.items())
        command.extend(["--output", f"runs/{run_name}.csv"])
        commands.append((params, command))
    return commands


def run_grid():
    commands = build_commands()
    print(f"--- Queued {len(commands)} Experiments ---")

    for i, (params, command) in enumerate(commands):
        print(f"\n[Job {i+1}/{len(commands)}] Starting: {params}")
        subprocess.run(command, check=True)

    print("\n--- ALL JOBS FINISHED ---")


if __name__ == "__main__":
    run_grid()
