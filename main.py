#!/usr/bin/env python3
"""
RentDesk - Interactive Menu Launcher
Run this file to reach the RentDesk commands through a numbered menu.

Usage:
    python main.py
"""

import subprocess
import sys
import os

PYTHON = sys.executable
RENTDESK = [PYTHON, "-m", "rentdesk.cli.main"]

# Project root on PYTHONPATH so 'rentdesk' is importable without installing
ENV = os.environ.copy()
ENV["PYTHONPATH"] = os.path.dirname(os.path.abspath(__file__))


def run(args: list[str]):
    """Run a RentDesk CLI command and return to menu when done."""
    print()
    subprocess.run(RENTDESK + args, env=ENV)
    print()
    input("  Press Enter to return to menu...")


def prompt(label: str, required: bool = True) -> str:
    """Prompt user for input. Returns empty string if optional and skipped."""
    while True:
        value = input(f"  {label}: ").strip()
        if value:
            return value
        if not required:
            return ""
        print("  (required - please enter a value)")


def prompt_optional(label: str) -> str:
    return prompt(f"{label} (optional, Enter to skip)", required=False)


def clear():
    os.system("cls" if os.name == "nt" else "clear")


# =============================================================================
# COMMAND HANDLERS
# =============================================================================

def tenants_provision():
    args = ["tenants", "provision"]
    doc = prompt_optional("Lease document path")
    if doc: args += ["--document", doc]
    run(args)

def tenants_delete():
    tid = prompt("Tenant ID")
    run(["tenants", "delete", tid])

def properties_list():
    args = ["properties", "list"]
    t = prompt_optional("Filter by type (rental/sale)")
    s = prompt_optional("Filter by status (Empty/Occupied/Available/...)")
    if t: args += ["--type", t]
    if s: args += ["--status", s]
    run(args)

def properties_add():
    run(["properties", "add"])

def properties_status():
    pid = prompt("Property ID")
    s = prompt("New status")
    run(["properties", "status", pid, s])

def contracts_status():
    cid = prompt("Contract ID")
    s = prompt("New status (Active/Inactive/Archived)")
    run(["contracts", "status", cid, s])

def contracts_document():
    cid = prompt("Contract ID")
    run(["contracts", "document", cid])

def inquiries_list():
    args = ["inquiries", "list"]
    s = prompt_optional("Filter by status (active/matched/contacted/closed)")
    if s: args += ["--status", s]
    run(args)

def inquiries_add():
    run(["inquiries", "add"])

def inquiries_matches():
    iid = prompt("Inquiry ID")
    run(["inquiries", "matches", iid])

def inquiries_contacted():
    iid = prompt("Inquiry ID")
    run(["inquiries", "contacted", iid])

def reminders_list():
    a = input("  Include contacted leases? (y/N): ").strip().lower()
    run(["reminders", "list"] + (["--all"] if a == "y" else []))

def reminders_contacted():
    cid = prompt("Contract ID")
    run(["reminders", "contacted", cid])

def reminders_snooze():
    cid = prompt("Contract ID")
    args = ["reminders", "snooze", cid]
    d = prompt_optional("Days (default: 7)")
    if d: args += ["--days", d]
    run(args)


# =============================================================================
# MENU LAYOUT
# =============================================================================

MENU = [
    ("TENANTS & LEASES", [
        ("New tenant with lease",        tenants_provision),
        ("Delete tenant",                tenants_delete),
        ("Change contract status",       contracts_status),
        ("Lease document link",          contracts_document),
    ]),
    ("PROPERTIES", [
        ("List properties",              properties_list),
        ("Add property",                 properties_add),
        ("Change property status",       properties_status),
    ]),
    ("INQUIRIES", [
        ("List inquiries",               inquiries_list),
        ("New inquiry",                  inquiries_add),
        ("Show matches",                 inquiries_matches),
        ("Mark contacted",               inquiries_contacted),
    ]),
    ("RENEWALS", [
        ("Renewal reminders",            reminders_list),
        ("Mark tenant contacted",        reminders_contacted),
        ("Snooze reminder",              reminders_snooze),
    ]),
]


def print_menu():
    clear()
    print("=" * 50)
    print("   RENTDESK - BACK OFFICE")
    print("=" * 50)

    n = 1
    numbering = {}  # maps display number -> handler function

    for section, commands in MENU:
        print(f"\n  {section}")
        print(f"  {'-' * len(section)}")
        for label, handler in commands:
            print(f"  {n:>2}.  {label}")
            numbering[n] = handler
            n += 1

    print("\n" + "=" * 50)
    print("   0.  Exit")
    print("=" * 50)
    return numbering


def main():
    while True:
        numbering = print_menu()

        try:
            choice = input("\n  Select a command: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\n  Goodbye!\n")
            break

        if choice == "0" or choice.lower() in ("q", "quit", "exit"):
            print("\n  Goodbye!\n")
            break

        try:
            n = int(choice)
            if n in numbering:
                clear()
                numbering[n]()
            else:
                print(f"\n  Invalid selection: {choice}")
                input("  Press Enter to continue...")
        except ValueError:
            print(f"\n  Please enter a number.")
            input("  Press Enter to continue...")


if __name__ == "__main__":
    main()
