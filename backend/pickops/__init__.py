"""PickOps - warehouse picking and shortfall reconciliation backend"""
