"""Graph builders and assertions shared by the fragmenter tests."""

from rdkit import Chem


def linear_chain(n_atoms, multiple_bonds=None):
    """Graph of an unbranched chain.

    Args:
        n_atoms: Number of atoms.
        multiple_bonds: Mapping of the first atom index of a bond to its bond order.

    Returns:
        (n_atoms, bonds, ring_membership) as taken by fragment_graph.
    """
    multiple_bonds = multiple_bonds or {}
    bonds = [(i, i + 1, multiple_bonds.get(i, 1)) for i in range(n_atoms - 1)]
    return n_atoms, bonds, [False] * n_atoms


def random_tree(rng, n_atoms):
    """Graph of a random acyclic skeleton of single bonds, no atom has more than four neighbours."""
    degrees = [0] * n_atoms
    bonds = []
    for atom_index in range(1, n_atoms):
        other_atom_index = rng.choice([i for i in range(atom_index) if degrees[i] < 4])
        degrees[atom_index] += 1
        degrees[other_atom_index] += 1
        bonds.append((other_atom_index, atom_index, 1))
    return n_atoms, bonds, [False] * n_atoms


def induced_subgraph(graph, atom_indices):
    """Graph of the given atoms only, renumbered in ascending order."""
    _, bonds, ring_membership = graph
    new_indices = {atom_index: i for i, atom_index in enumerate(sorted(atom_indices))}
    sub_bonds = [
        (new_indices[a], new_indices[b], order)
        for a, b, order in bonds
        if a in new_indices and b in new_indices
    ]
    sub_ring_membership = [ring_membership[atom_index] for atom_index in sorted(atom_indices)]
    return len(new_indices), sub_bonds, sub_ring_membership


def as_sets(fragments):
    return {frozenset(fragment) for fragment in fragments}


def assert_partition(fragments, n_atoms):
    atoms = [atom for fragment in fragments for atom in fragment]
    assert sorted(atoms) == list(range(n_atoms)), f"not a partition: {fragments}"
    assert all(fragments), f"empty fragment in {fragments}"


def fragment_of(fragments, atom_index):
    for fragment in fragments:
        if atom_index in fragment:
            return set(fragment)
    raise AssertionError(f"atom {atom_index} is not part of any fragment")


def get_mol(smiles):
    mol = Chem.MolFromSmiles(smiles)
    assert mol is not None, smiles
    return mol
