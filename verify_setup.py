#!/usr/bin/env python3
"""
ATR Partition Trader Environment Setup Verification Script

This script validates that the project setup is correctly configured:
- Package imports from all atr_trader modules
- config.yaml loading and validation
- Environment variables and .env file
- Dependency availability
- Log directory permissions

Run this before connecting to Binance to ensure the environment is ready.

Usage:
    python verify_setup.py
    python verify_setup.py --verbose
"""

import sys
import os
from pathlib import Path
from typing import Dict, List, Tuple
import importlib
import argparse


# Distribution name -> import name
DEPENDENCIES: Dict[str, str] = {
    "pydantic": "pydantic",
    "loguru": "loguru",
    "PyYAML": "yaml",
    "python-dotenv": "dotenv",
    "python-binance": "binance",
}


class Colors:
    """ANSI color codes for terminal output"""
    GREEN = '\033[92m'
    RED = '\033[91m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'
    BOLD = '\033[1m'
    RESET = '\033[0m'


class EnvironmentValidator:
    """Validates the ATR Partition Trader environment"""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.results: List[Tuple[str, bool, str]] = []
        self.project_root = Path(__file__).parent.resolve()

    def log(self, message: str, level: str = "info"):
        """Print messages based on verbosity"""
        if self.verbose or level == "error":
            prefix = {
                "info": f"{Colors.BLUE}i{Colors.RESET}",
                "success": f"{Colors.GREEN}+{Colors.RESET}",
                "error": f"{Colors.RED}x{Colors.RESET}",
                "warning": f"{Colors.YELLOW}!{Colors.RESET}"
            }.get(level, "")
            print(f"{prefix} {message}")

    def add_result(self, check_name: str, passed: bool, details: str = ""):
        """Record a check result"""
        self.results.append((check_name, passed, details))
        status = f"{Colors.GREEN}PASS{Colors.RESET}" if passed else f"{Colors.RED}FAIL{Colors.RESET}"
        print(f"[{status}] {check_name}")
        if details and (not passed or self.verbose):
            print(f"      {details}")

    def validate_imports(self) -> bool:
        """Import every atr_trader subpackage"""
        self.log("Validating package imports...", "info")

        modules_to_check = [
            'atr_trader.core',
            'atr_trader.data',
            'atr_trader.execution',
            'atr_trader.processors',
            'atr_trader.paper',
        ]

        all_passed = True
        for module_name in modules_to_check:
            try:
                importlib.import_module(module_name)
                self.add_result(f"Import {module_name}", True, "Module imported successfully")
            except ImportError as e:
                self.add_result(f"Import {module_name}", False, f"ImportError: {str(e)}")
                all_passed = False
            except Exception as e:
                self.add_result(f"Import {module_name}", False, f"Unexpected error: {str(e)}")
                all_passed = False

        return all_passed

    def validate_config_yaml(self) -> bool:
        """Load config.yaml through the trader's own validation"""
        self.log("Validating config.yaml...", "info")

        config_path = self.project_root / "config.yaml"

        if not config_path.exists():
            self.add_result("config.yaml exists", False, f"File not found at {config_path}")
            return False

        self.add_result("config.yaml exists", True, f"Found at {config_path}")

        try:
            from atr_trader.config import ConfigError, load_config
        except ImportError as e:
            self.add_result("config.yaml validates", False, f"ImportError: {str(e)}")
            return False

        try:
            config = load_config(config_path)
        except ConfigError as e:
            self.add_result("config.yaml validates", False, str(e))
            return False

        self.add_result("config.yaml validates", True,
                        f"{config.symbol} on {'testnet' if config.use_testnet else 'mainnet'}")

        entry = config.entry
        if len(entry.weights) != len(entry.take_profits):
            self.add_result("entry partitions", False,
                            f"{len(entry.weights)} weights but {len(entry.take_profits)} take-profits")
            return False

        total = sum(entry.weights)
        self.add_result("entry partitions", True,
                        f"{len(entry.weights)} partitions, weights sum to {total:g}%")
        if total != 100:
            self.log(f"Partition weights sum to {total:g}%, not 100%", "warning")

        return True

    def validate_env_file(self) -> bool:
        """Validate .env file and the credentials for the configured network"""
        self.log("Validating .env file...", "info")

        env_path = self.project_root / ".env"
        env_example_path = self.project_root / ".env.example"

        if not env_example_path.exists():
            self.add_result(".env.example exists", False, "Template file not found")
            return False

        self.add_result(".env.example exists", True, "Template file found")

        if not env_path.exists():
            # Not fatal: paper sessions need no credentials
            self.add_result(".env exists", False,
                            "Create .env file from .env.example template")
            self.log("Copy .env.example to .env and configure your API keys", "warning")
            return True

        self.add_result(".env exists", True, "Environment file found")

        try:
            from dotenv import load_dotenv
            from atr_trader.data.binance_client import CredentialError, load_credentials
        except ImportError as e:
            self.add_result("python-dotenv loads", False, f"ImportError: {str(e)}")
            return False

        load_dotenv(env_path, override=False)
        self.add_result("python-dotenv loads", True, "dotenv module functional")

        use_testnet = True
        try:
            from atr_trader.config import ConfigError, load_config
            use_testnet = load_config(self.project_root / "config.yaml").use_testnet
        except ConfigError as e:
            self.log(f"Checking testnet credentials ({e})", "warning")

        try:
            load_credentials(use_testnet)
        except CredentialError as e:
            self.add_result(".env configured", False, str(e))
            return False

        self.add_result(".env configured", True,
                        f"{'Testnet' if use_testnet else 'Mainnet'} credentials present")
        return True

    def validate_dependencies(self) -> bool:
        """Validate every runtime dependency is importable"""
        self.log("Validating installed dependencies...", "info")

        all_installed = True
        for dist_name, module_name in DEPENDENCIES.items():
            try:
                importlib.import_module(module_name)
                self.add_result(f"Dependency: {dist_name}", True, "Installed and importable")
            except ImportError:
                self.add_result(f"Dependency: {dist_name}", False,
                                "Not installed or not importable")
                all_installed = False
            except Exception as e:
                self.add_result(f"Dependency: {dist_name}", False,
                                f"Error checking: {str(e)}")
                all_installed = False

        return all_installed

    def validate_logs_directory(self) -> bool:
        """Validate the logs directory exists (created if missing) and is writable"""
        self.log("Validating logs directory...", "info")

        logs_dir = self.project_root / "logs"
        try:
            logs_dir.mkdir(exist_ok=True)
        except OSError as e:
            self.add_result("logs/ directory exists", False, f"Cannot create: {str(e)}")
            return False

        self.add_result("logs/ directory exists", True, "Directory found")

        test_file = logs_dir / ".write_test"
        try:
            with open(test_file, 'w') as f:
                f.write("write test")
            self.add_result("logs/ directory writable", True, "Write permission confirmed")
            return True
        except PermissionError:
            self.add_result("logs/ directory writable", False, "Permission denied")
            return False
        finally:
            if test_file.exists():
                os.remove(test_file)

    def print_summary(self) -> bool:
        """Print summary of all validation results"""
        print(f"\n{Colors.BOLD}{'='*70}{Colors.RESET}")
        print(f"{Colors.BOLD}VALIDATION SUMMARY{Colors.RESET}")
        print(f"{Colors.BOLD}{'='*70}{Colors.RESET}\n")

        total_checks = len(self.results)
        passed_checks = sum(1 for _, passed, _ in self.results if passed)
        failed_checks = total_checks - passed_checks

        print(f"Total Checks: {total_checks}")
        print(f"{Colors.GREEN}Passed: {passed_checks}{Colors.RESET}")
        print(f"{Colors.RED}Failed: {failed_checks}{Colors.RESET}")

        if failed_checks == 0:
            print(f"\n{Colors.GREEN}{Colors.BOLD}ALL CHECKS PASSED{Colors.RESET}\n")
            return True

        print(f"\n{Colors.RED}{Colors.BOLD}SOME CHECKS FAILED{Colors.RESET}")
        print(f"{Colors.BOLD}Failed Checks:{Colors.RESET}")
        for check_name, passed, details in self.results:
            if not passed:
                print(f"  - {check_name}")
                if details:
                    print(f"    {details}")
        print()
        return False

    def run_all_validations(self) -> bool:
        """Run all validation checks"""
        print(f"\n{Colors.BOLD}ATR Partition Trader Environment Validation{Colors.RESET}")
        print(f"{Colors.BOLD}{'='*70}{Colors.RESET}\n")

        self.validate_imports()
        print()

        self.validate_config_yaml()
        print()

        self.validate_env_file()
        print()

        self.validate_dependencies()
        print()

        self.validate_logs_directory()
        print()

        return self.print_summary()


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Validate ATR Partition Trader environment setup',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python verify_setup.py          # Run validation with standard output
  python verify_setup.py -v       # Run with verbose output
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose output')

    args = parser.parse_args()

    validator = EnvironmentValidator(verbose=args.verbose)

    try:
        success = validator.run_all_validations()
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Validation interrupted by user{Colors.RESET}")
        sys.exit(130)


if __name__ == "__main__":
    main()
