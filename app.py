#!/usr/bin/env python3
import os
import sys
import tomllib

import aws_cdk as cdk

from latticedemo.stacks.lattice_demo_stack import VpcLatticeDemoStack

# Initialize the CDK app which loads the built-in context (from cdk.json and CLI)
app = cdk.App()

# Load TOML configuration from config.toml, next to this script
config_file_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config.toml")
print(f"Looking for config file at: {config_file_path}")

try:
    with open(config_file_path, "rb") as f:
        config = tomllib.load(f)

        # Values passed with -c win over the config file
        for key, value in config.items():
            if app.node.try_get_context(key) is None:
                app.node.set_context(key, value)
except FileNotFoundError:
    print("No config.toml found, using CDK context only.")
except tomllib.TOMLDecodeError:
    sys.exit(f"Error: Config file '{config_file_path}' contains invalid TOML.")

stack_prefix = app.node.try_get_context("stack_prefix") or os.environ.get("DEV_PREFIX")
if not stack_prefix:
    sys.exit(
        "Error: Missing required context variable 'stack_prefix'. "
        "Please pass it via the CLI (e.g., -c stack_prefix=your_value) or define it in config.toml."
    )

# Validate the optional lattice block
lattice = app.node.try_get_context("lattice") or {}
if not isinstance(lattice, dict):
    sys.exit("Error: The 'lattice' context value must be a table.")

hosted_zone = lattice.get("hosted_zone")
if hosted_zone is not None and (
    not isinstance(hosted_zone, dict) or not hosted_zone.get("id") or not hosted_zone.get("name")
):
    sys.exit("Error: 'lattice.hosted_zone' needs both 'id' and 'name'.")

if lattice.get("custom_domain") and not (hosted_zone or lattice.get("certificate_arn")):
    sys.exit(
        "Error: 'lattice.custom_domain' needs either 'lattice.certificate_arn' or 'lattice.hosted_zone' "
        "so a certificate can be imported or validated."
    )

# Set the stack_prefix in context so constructs can access it without direct passing
app.node.set_context("stack_prefix", stack_prefix)

VpcLatticeDemoStack(
    app,
    f"{stack_prefix}-VpcLatticeDemo",
    env=cdk.Environment(account=os.getenv("CDK_DEFAULT_ACCOUNT"), region=os.getenv("CDK_DEFAULT_REGION")),
)

app.synth()
