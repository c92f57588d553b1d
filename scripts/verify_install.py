#!/usr/bin/env python3
"""Verify the Gravita AI router installation and provider configuration."""
import importlib
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


def check_python_version() -> bool:
    """Check Python version >= 3.10."""
    version = sys.version_info
    if version >= (3, 10):
        print(f"  Python {version.major}.{version.minor}.{version.micro}")
        return True
    print(f"  Python {version.major}.{version.minor} (need 3.10+)")
    return False


def check_dependencies() -> bool:
    """Check required packages are installed."""
    required = [
        "google.generativeai",
        "google.api_core",
        "openai",
        "pydantic",
        "pydantic_settings",
        "fastapi",
        "slowapi",
        "uvicorn",
    ]
    missing = []
    for module in required:
        try:
            importlib.import_module(module)
        except ImportError:
            missing.append(module)

    if missing:
        print(f"  Missing: {', '.join(missing)}")
        return False
    print(f"  All {len(required)} required packages installed")
    return True


def check_provider_keys() -> bool:
    """Check which providers have API keys. The default tiers need Gemini and DeepSeek."""
    from gravita_ai.core.config import Settings
    from gravita_ai.llm.registry import default_registry

    registry = default_registry(Settings())
    status = {p["provider"]: p["configured"] for p in registry.configured_providers()}
    for provider, configured in status.items():
        print(f"  {provider}: {'configured' if configured else 'missing key'}")

    if not status["gemini"]:
        print("  GOOGLE_GEMINI_API_KEY is required for the simple and standard tiers")
        return False
    if not status["deepseek"]:
        print("  DEEPSEEK_API_KEY missing: advanced-tier tasks will be refused")
    return True


def check_routing() -> bool:
    """Check every task type resolves without touching the network."""
    from gravita_ai.core.config import Settings
    from gravita_ai.core.cost_tracker import CostTracker
    from gravita_ai.llm.errors import ProviderNotConfigured
    from gravita_ai.llm.registry import default_registry
    from gravita_ai.llm.router import ModelRouter, TaskType

    router = ModelRouter(default_registry(Settings()), CostTracker())
    unrouted = []
    for task_type in TaskType:
        try:
            router.resolve(task_type)
        except ProviderNotConfigured:
            unrouted.append(task_type.value)

    if unrouted:
        print(f"  Not routable: {', '.join(unrouted)}")
        return False
    print(f"  All {len(TaskType)} task types route to a configured provider")
    return True


CHECKS = [
    ("Python Version", check_python_version),
    ("Dependencies", check_dependencies),
    ("Provider Keys", check_provider_keys),
    ("Routing", check_routing),
]


def run_check(name, check_fn) -> bool:
    print(f"\n[{name}]")
    try:
        return check_fn()
    except Exception as e:
        print(f"  Error: {e}")
        return False


def main():
    """Run all verification checks and print a PASS/FAIL table."""
    print("Gravita AI Router Installation Verification")
    print("-" * 44)

    results = {name: run_check(name, check_fn) for name, check_fn in CHECKS}

    print("\n" + "-" * 44)
    for name, ok in results.items():
        print(f"  [{'PASS' if ok else 'FAIL'}] {name}")
    passed = sum(results.values())
    print(f"\n{passed}/{len(results)} checks passed")

    if passed < len(results):
        print("Fix the failing checks above, then run this script again.")
        return 1
    print("Start the API with: uvicorn gravita_ai.api.server:app")
    return 0


if __name__ == "__main__":
    sys.exit(main())
