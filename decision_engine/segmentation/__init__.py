"""
Segmentation package.

Boolean targeting DSL used by campaign pre-segmentation and
whitelisting.

Modules of interest:
- models: Typed segment tree and the parser from wire JSON.
- operands: Operand classification and value matching.
- evaluator: Tree evaluation against a user context, including grouped
  geo and user-agent checks and feature-state references.
"""
