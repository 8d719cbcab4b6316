#!/usr/bin/env python3
"""
Main execution module for the fabric inspection and migration tool
"""

from fabric_doctor.cli.commands import main

if __name__ == "__main__":
    main()
