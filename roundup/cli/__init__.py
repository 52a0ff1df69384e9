"""Unified command-line interface for the round-up receipt client.

Usage:
    roundup upload <file>
    roundup upload <file> --yes
    roundup upload <file> --retailer Target --total 45.99 --item "Shirt:19.99:Nike"
    roundup check <file>
    roundup preview --total 1.00 FL=3 NKE=2
"""
