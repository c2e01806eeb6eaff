"""Contract verification of required classes and REST routes."""

from selfaudit.contracts.verifier import ContractCheck, ContractVerifier, run_contracts

__all__ = ["ContractCheck", "ContractVerifier", "run_contracts"]
