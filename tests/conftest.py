"""Test configuration and fixtures for the alkyl fragmenter tests."""

import random

import pytest

from helpers import random_tree


@pytest.fixture
def hydrocarbon_smiles() -> list[str]:
    """Acyclic, cyclic, unsaturated and highly branched hydrocarbons."""
    return [
        "C",
        "CC",
        "C=C",
        "CCCCCCCCCC",
        "CCCC(CCCCC)CCCCC",
        "CCCC(CC)CCCCC",
        "CCCC(C(C)(C)C)CCC(CC(C)(C(C)C))CC(CC)C(C)C",
        "C=CC(C)C#CCC(C)(C)C",
        "CC=CC(=CC)C(C)C=C",
        "C1CCCCC1",
        "CC1CCCCC1",
        "C=C1CCCCC1",
        "CCCCC1CCC(CC)CC1",
        "C1CCC2CCCCC2C1",
        "C1CCCCC1C1CCCCC1",
        "C1CCCCC1CCC1CCCCC1",
        "c1ccc(CCc2ccccc2)cc1",
        "C1CC1CC(C)CC1CCC1",
        "CC(C)C1CCC(CC1)C(C)CCC=C",
        "C1CCCCC1C(CCC1CCCC1)CC1CCC1",
        "CCC(=C)C1=CCCC1",
        "C1CCCCC1C=CC1CCCCC1",
        "C(C1CCCC1)(C1CCCC1)C1CCCC1",
    ]


@pytest.fixture
def random_trees() -> list[tuple]:
    """Reproducible random acyclic skeletons with up to 24 atoms."""
    rng = random.Random(20240611)
    return [random_tree(rng, rng.randint(1, 24)) for _ in range(300)]
