import logging
from collections import deque, namedtuple

LOG = logging.getLogger(__name__)


class FragmentationError(RuntimeError):
    """Raised when the fragmentation of a molecule cannot be completed consistently."""


# entry of the ring system walk: the atom to visit and the atom it was reached from
_walk_entry = namedtuple("_walk_entry", ["atom", "connection_atom"])


class _disjoint_set:
    """Union-find over atom indices, each set carrying a flag that is kept under union."""

    def __init__(self, items, flags):
        self.parents = {item: item for item in items}
        self.flags = {item: bool(flags(item)) for item in items}

    def find(self, item):
        parents = self.parents
        while parents[item] != item:
            parents[item] = parents[parents[item]]
            item = parents[item]
        return item

    def union(self, item, other_item):
        root = self.find(item)
        other_root = self.find(other_item)
        if root == other_root:
            return False
        self.parents[other_root] = root
        self.flags[root] = self.flags[root] or self.flags[other_root]
        return True

    def is_flagged(self, item):
        return self.flags[self.find(item)]


class _fragmentation_run:
    """State of one fragmentation run.

    The connections are consumed while the molecule is taken apart, so a new
    run has to be created for every molecule.

    Attributes:
        n_atoms (int): Number of atoms of the skeleton.
        neighbours (list): Full neighbour lists, never modified.
        connections (list): Neighbour lists that are consumed during the run.
        single_bonds (set): frozensets of the atom index pairs joined by a single bond.
        ring_membership (list): Ring flag of every atom.
        branching_atoms (set): Indices of tertiary and quaternary atoms.
        fragments (list): Finished fragments, lists of atom indices.
        remainders (list): Pending remainder stubs, the first atom is the connection atom.
    """

    def __init__(self, n_atoms, bonds, ring_membership):
        self.n_atoms = n_atoms
        self.neighbours = [[] for _ in range(n_atoms)]
        self.single_bonds = set()
        for atom_index, other_atom_index, order in bonds:
            self.neighbours[atom_index].append(other_atom_index)
            self.neighbours[other_atom_index].append(atom_index)
            if order == 1:
                self.single_bonds.add(frozenset((atom_index, other_atom_index)))

        self.connections = self.get_connections(range(n_atoms))
        self.ring_membership = [bool(flag) for flag in ring_membership]
        self.branching_atoms = {
            atom_index
            for atom_index, neighbours in enumerate(self.neighbours)
            if len(neighbours) >= 3
        }
        self.fragments = []
        self.remainders = []

    def get_connections(self, atom_indices):
        """Build fresh neighbour lists restricted to the given atoms."""
        atom_indices = set(atom_indices)
        connections = [[] for _ in range(self.n_atoms)]
        for atom_index in atom_indices:
            connections[atom_index] = [
                neighbour
                for neighbour in self.neighbours[atom_index]
                if neighbour in atom_indices
            ]
        return connections

    def is_single_bond(self, atom_index, other_atom_index):
        return frozenset((atom_index, other_atom_index)) in self.single_bonds


class alkyl_fragmenter:
    """Class for cutting the carbon skeleton of hydrocarbons into fragments of a defined size.

    The acyclic part of the molecule is peeled off into branches (see cut_branches), rings and
    ring linkers are separated from each other, and every chain is cut into pieces between
    min_cut and max_cut atoms. Multiple bonds are never cut and, optionally, every tertiary and
    quaternary atom keeps all of its neighbours. Pieces that are too small, or that were split off
    to honour these rules, are added back to the fragment they were cut from (see make_corrections).

    Attributes:
        min_cut (int): Minimum fragment size, 0 for no minimum.
        max_cut (int): Maximum fragment size, 0 for no maximum.
        preserve_branching_atoms (bool): Whether tertiary and quaternary atoms keep all neighbours.
    """

    from rdkit import Chem
    from rdkit.Chem import rdmolops
    import warnings

    def __init__(self, min_cut=0, max_cut=0, preserve_branching_atoms=False):
        """Initialize the fragmenter with its size settings.

        Args:
            min_cut (int, optional): Minimum number of atoms per fragment. Defaults to 0 (no minimum).
            max_cut (int, optional): Maximum number of atoms per fragment. Defaults to 0 (no maximum).
            preserve_branching_atoms (bool, optional): Keep tertiary and quaternary atoms together
                with all their neighbours. Defaults to False.

        Raises:
            TypeError: If min_cut or max_cut is not an integer or preserve_branching_atoms is not a bool.
            ValueError: If min_cut or max_cut is negative.
            ValueError: If min_cut is larger than max_cut while both are set.
        """
        for name, value in (("min_cut", min_cut), ("max_cut", max_cut)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(name + " must be an integer.")
            if value < 0:
                raise ValueError(name + " must be 0 or higher.")

        if not isinstance(preserve_branching_atoms, bool):
            raise TypeError("preserve_branching_atoms must be True or False.")

        if min_cut and max_cut and min_cut > max_cut:
            raise ValueError(
                "min_cut ({}) must not be larger than max_cut ({}).".format(min_cut, max_cut)
            )

        self.min_cut = min_cut
        self.max_cut = max_cut
        self.preserve_branching_atoms = preserve_branching_atoms

    def __repr__(self):
        return "alkyl_fragmenter(min_cut={}, max_cut={}, preserve_branching_atoms={})".format(
            self.min_cut, self.max_cut, self.preserve_branching_atoms
        )

    def get_molecule(self, SMILES_or_molecule):
        """Return an RDKit molecule of a single connected skeleton.

        Args:
            SMILES_or_molecule (str or Mol): SMILES string or RDKit Mol object.

        Returns:
            Mol: The RDKit molecule.

        Raises:
            ValueError: If the SMILES is not valid or the molecule consists of multiple fragments.
            TypeError: If the argument is neither a string nor an RDKit molecule.
        """
        if isinstance(SMILES_or_molecule, str):
            mol = alkyl_fragmenter.Chem.MolFromSmiles(SMILES_or_molecule)
            if mol is None:
                raise ValueError("Following SMILES is not valid: " + SMILES_or_molecule)
        elif isinstance(SMILES_or_molecule, alkyl_fragmenter.Chem.Mol):
            mol = SMILES_or_molecule
        else:
            raise TypeError("A SMILES string or an RDKit molecule is needed.")

        if mol.GetNumAtoms() and len(alkyl_fragmenter.rdmolops.GetMolFrags(mol)) != 1:
            raise ValueError("alkyl_fragmenter does not accept multifragment molecules.")

        other_elements = sorted(
            {atom.GetSymbol() for atom in mol.GetAtoms() if atom.GetAtomicNum() != 6}
        )
        if other_elements:
            alkyl_fragmenter.warnings.warn(
                "The molecule contains other atoms than carbon ({}), they are handled like skeleton carbon atoms.".format(
                    ", ".join(other_elements)
                )
            )

        return mol

    @staticmethod
    def get_graph(mol):
        """Extract the skeleton graph of a molecule.

        Args:
            mol: An RDKit molecule object.

        Returns:
            tuple: A tuple containing:
                - n_atoms (int): Number of atoms.
                - bonds (list): (atom index, atom index, bond order) triples.
                - ring_membership (list): True for every atom that is part of a ring.
        """
        bonds = [
            (bond.GetBeginAtomIdx(), bond.GetEndAtomIdx(), bond.GetBondTypeAsDouble())
            for bond in mol.GetBonds()
        ]
        ring_membership = [atom.IsInRing() for atom in mol.GetAtoms()]
        return mol.GetNumAtoms(), bonds, ring_membership

    @staticmethod
    def get_fragment_molecule(mol, fragment_indices):
        """Extract one fragment as a molecule of its own, saturated with hydrogens where bonds were cut.

        Only atoms that lost a neighbour get their hydrogens recomputed, all other atoms keep their
        explicit hydrogens (e.g. the [nH] of an aromatic ring).

        Args:
            mol: The RDKit molecule that was fragmented.
            fragment_indices (list): Atom indices of the fragment.

        Returns:
            Mol: A sanitized RDKit molecule of the fragment.
        """
        atoms_to_keep = set(fragment_indices)
        cut_atoms = {
            atom_index
            for atom_index in atoms_to_keep
            for neighbour in mol.GetAtomWithIdx(atom_index).GetNeighbors()
            if neighbour.GetIdx() not in atoms_to_keep
        }
        # atoms are removed from the back, so kept atoms are renumbered in ascending order
        new_indices = {atom_index: i for i, atom_index in enumerate(sorted(atoms_to_keep))}

        fragment_mol = alkyl_fragmenter.Chem.RWMol(mol)
        for atom_index in range(mol.GetNumAtoms() - 1, -1, -1):
            if atom_index not in atoms_to_keep:
                fragment_mol.RemoveAtom(atom_index)

        for atom_index in cut_atoms:
            atom = fragment_mol.GetAtomWithIdx(new_indices[atom_index])
            atom.SetNoImplicit(False)
            atom.SetNumRadicalElectrons(0)

        fragment_mol = fragment_mol.GetMol()
        alkyl_fragmenter.Chem.SanitizeMol(fragment_mol)
        return fragment_mol

    def fragment(self, SMILES_or_molecule):
        """Fragment a molecule with the configured settings.

        Args:
            SMILES_or_molecule (str or Mol): The molecule to fragment, as SMILES string or RDKit Mol object.

        Returns:
            tuple: A tuple containing:
                - fragments_SMILES (list): SMILES of every fragment, saturated with hydrogens.
                - fragments_indices (list): Atom indices of every fragment in the input molecule.

        Raises:
            ValueError: If the SMILES is invalid or the molecule consists of multiple fragments.
            FragmentationError: If the fragmentation cannot be completed consistently.
        """
        return self.fragment_molecule(self.get_molecule(SMILES_or_molecule))

    def fragment_molecule(self, mol):
        """Fragment a molecule already checked by get_molecule, see fragment."""
        fragments_indices = self.fragment_graph(*self.get_graph(mol))
        fragments_SMILES = [
            alkyl_fragmenter.Chem.MolToSmiles(self.get_fragment_molecule(mol, indices))
            for indices in fragments_indices
        ]
        return fragments_SMILES, fragments_indices

    def get_branches(self, SMILES_or_molecule):
        """Return the branches of the acyclic part of a molecule.

        The last entry is the main branch (trunk), or an empty list if a ring system remains.
        """
        mol = self.get_molecule(SMILES_or_molecule)
        run = _fragmentation_run(*self.get_graph(mol))
        return self.cut_branches(run.connections, range(run.n_atoms))

    def fragment_graph(self, n_atoms, bonds, ring_membership):
        """Fragment a skeleton given as a graph.

        Args:
            n_atoms (int): Number of atoms, atoms are numbered from 0 to n_atoms - 1.
            bonds (list): (atom index, atom index, bond order) triples, bond order 1 is a single bond.
            ring_membership (list): One boolean per atom, True if the atom is part of a ring.

        Returns:
            list: The fragments, each a list of atom indices. Every atom is part of exactly one fragment.

        Raises:
            ValueError: If the graph is not a valid connected skeleton.
            FragmentationError: If the fragmentation cannot be completed consistently.
        """
        self.__check_graph(n_atoms, bonds, ring_membership)
        if n_atoms == 0:
            return []

        run = _fragmentation_run(n_atoms, bonds, ring_membership)

        branches = self.cut_branches(run.connections, range(n_atoms))
        LOG.debug("%d branches, ring system remaining: %s", len(branches), not branches[-1])
        self.__cut_chains(run, branches)

        if not branches[-1]:
            self.__cut_rings(run)

        LOG.debug(
            "%d fragments, %d remainders to add back", len(run.fragments), len(run.remainders)
        )
        return self.make_corrections(run.fragments, run.remainders)

    @staticmethod
    def __check_graph(n_atoms, bonds, ring_membership):
        if len(ring_membership) != n_atoms:
            raise ValueError("ring_membership needs exactly one entry per atom.")

        neighbours = [set() for _ in range(n_atoms)]
        for atom_index, other_atom_index, _ in bonds:
            if not (0 <= atom_index < n_atoms and 0 <= other_atom_index < n_atoms):
                raise ValueError(
                    "Bond {}-{} refers to an atom outside of the molecule.".format(
                        atom_index, other_atom_index
                    )
                )
            if atom_index == other_atom_index or other_atom_index in neighbours[atom_index]:
                raise ValueError(
                    "Bond {}-{} is not a valid bond.".format(atom_index, other_atom_index)
                )
            neighbours[atom_index].add(other_atom_index)
            neighbours[other_atom_index].add(atom_index)

        if n_atoms == 0:
            return

        reached = {0}
        atoms_to_visit = [0]
        while atoms_to_visit:
            for neighbour in neighbours[atoms_to_visit.pop()]:
                if neighbour not in reached:
                    reached.add(neighbour)
                    atoms_to_visit.append(neighbour)

        if len(reached) != n_atoms:
            raise ValueError("The skeleton must be a single connected molecule.")

    @staticmethod
    def cut_branches(connections, atom_indices):
        """Dissect the acyclic part of a molecule into its branches.

        Every terminal atom starts a chain. All chains grow atom by atom at the same time and the
        traversed bonds are removed from connections. A chain that reaches a branching is finished,
        reversed so that it starts with the branching atom, and added to the branches. When the last
        two chains meet, they are joined into the main branch (trunk). If all chains end at
        branchings, a ring system is left and an empty list is added instead of a trunk.

        Args:
            connections (list): Neighbour lists indexed by atom index, consumed by this method.
            atom_indices (iterable): Atom indices of the part of the molecule to dissect.

        Returns:
            list: Lists of atom indices, one per branch. The last one is the trunk or empty.

        Raises:
            FragmentationError: If more than two chains meet without a branching.
        """
        atom_indices = list(atom_indices)
        if len(atom_indices) == 1 and not connections[atom_indices[0]]:
            return [[atom_indices[0]]]

        branches = []
        chains = [[atom_index] for atom_index in atom_indices if len(connections[atom_index]) == 1]

        while chains:
            chain_index = 0
            while chain_index < len(chains):
                chain = chains[chain_index]
                last_atom = chain[-1]

                if not connections[last_atom]:
                    # the two last chains have reached each other
                    if len(chains) != 2:
                        raise FragmentationError(
                            "{} chains met at atom {}.".format(len(chains), last_atom)
                        )
                    first_chain, second_chain = chains
                    branches.append(second_chain + first_chain[-2::-1])
                    return branches

                next_atom = connections[last_atom][0]
                connections[last_atom].remove(next_atom)
                connections[next_atom].remove(last_atom)
                chain.append(next_atom)

                if len(connections[next_atom]) > 1:
                    branches.append(chain[::-1])
                    del chains[chain_index]
                    continue

                chain_index += 1

        branches.append([])
        return branches

    def __is_cuttable(self, run, atom_index, other_atom_index):
        if not run.is_single_bond(atom_index, other_atom_index):
            return False
        if self.preserve_branching_atoms and (
            atom_index in run.branching_atoms or other_atom_index in run.branching_atoms
        ):
            return False
        return True

    def __cut_chains(self, run, branches):
        """Cut every branch into fragments of the configured size.

        All branches except the trunk start with the atom they are connected to. The part at this
        end that must not be separated from it becomes a remainder, as does the whole branch if it
        is too short.
        """
        has_trunk = bool(branches[-1])
        for branch_index, branch in enumerate(branches):
            if not branch:
                continue

            if has_trunk and branch_index == len(branches) - 1:
                if len(branch) <= self.min_cut:
                    run.fragments.append(branch)
                else:
                    self.__slice_chain(run, branch)
                continue

            stub_length = 0
            while stub_length + 1 < len(branch) and not self.__is_cuttable(
                run, branch[stub_length], branch[stub_length + 1]
            ):
                stub_length += 1

            if len(branch) - stub_length <= self.min_cut:
                run.remainders.append(branch)
                continue

            if stub_length:
                run.remainders.append(branch[: stub_length + 1])
            self.__slice_chain(run, branch[stub_length + 1 :])

    def __slice_chain(self, run, chain):
        """Slice a linear chain from its far end towards its head.

        Pieces have max_cut atoms (min_cut atoms if there is no maximum). A cut that would split a
        multiple bond or a branching atom from its neighbour is moved towards the far end, making the
        piece smaller but not smaller than min_cut, and otherwise towards the head.
        """
        if not chain:
            return

        step = self.max_cut or self.min_cut
        if not step:
            run.fragments.append(chain)
            return

        slack = max(self.max_cut - max(self.min_cut, 1), 0) if self.max_cut else 0

        end = len(chain)
        while end - step >= 0:
            start = self.__find_cut_position(run, chain, end - step, slack)
            run.fragments.append(chain[start:end])
            end = start

        if end:
            if end >= self.min_cut:
                run.fragments.append(chain[:end])
            else:
                # connection atom first, it is part of the piece cut last
                run.remainders.append(chain[end::-1])

    def __find_cut_position(self, run, chain, position, slack):
        for shift in range(slack + 1):
            candidate = position + shift
            if candidate <= 0 or self.__is_cuttable(run, chain[candidate - 1], chain[candidate]):
                return candidate

        candidate = position - 1
        while candidate > 0 and not self.__is_cuttable(run, chain[candidate - 1], chain[candidate]):
            candidate -= 1
        return max(candidate, 0)

    def __walk_ring_system(self, run):
        """Separate the remaining ring system into runs of ring atoms and runs of ring linker atoms.

        Starting from the first atom that still has connections, the first neighbour of the same kind
        continues the current run, further neighbours of the same kind start side runs of it, and
        neighbours of the other kind start new runs. Visited bonds are removed from the connections.

        Returns:
            list: (is_ring, atom indices) tuples in the order the runs were found.
        """
        start_atoms = [
            atom_index for atom_index in range(run.n_atoms) if run.connections[atom_index]
        ]
        if not start_atoms:
            return []

        runs = []
        visited = set()
        fragment_starts = deque([_walk_entry(start_atoms[0], None)])

        while fragment_starts:
            entry = fragment_starts.popleft()
            if entry.atom in visited:
                continue

            is_ring = run.ring_membership[entry.atom]
            connection_atom = entry.connection_atom
            current_run = []
            continuation = deque([entry])
            branch_starts = deque()

            while continuation or branch_starts:
                entry = (continuation or branch_starts).popleft()
                atom_index = entry.atom
                if atom_index in visited:
                    continue
                visited.add(atom_index)
                current_run.append(atom_index)

                has_same_kind_neighbour = False
                for neighbour in run.connections[atom_index]:
                    run.connections[neighbour].remove(atom_index)
                    if neighbour in visited:
                        continue
                    if run.ring_membership[neighbour] != is_ring:
                        fragment_starts.append(_walk_entry(neighbour, atom_index))
                    elif has_same_kind_neighbour:
                        branch_starts.append(_walk_entry(neighbour, atom_index))
                    else:
                        continuation.append(_walk_entry(neighbour, atom_index))
                        has_same_kind_neighbour = True
                run.connections[atom_index] = []

            LOG.debug(
                "%s run of %d atoms reached from atom %s",
                "ring" if is_ring else "ring linker",
                len(current_run),
                connection_atom,
            )
            runs.append((is_ring, current_run))

        return runs

    def __cut_rings(self, run):
        """Emit ring systems as fragments and fragment the ring linkers between them.

        Ring atoms of one run form one group. A linker atom that cannot be cut from a group (multiple
        bond, or a branching atom when branching atoms are preserved) is added to it until no such
        bond is left. The other linker atoms are merged along their bonds into linker segments, which
        are cut like any alkyl chain.
        """
        runs = self.__walk_ring_system(run)
        walk_order = [atom_index for _, run_atoms in runs for atom_index in run_atoms]
        atoms_in_system = set(walk_order)

        groups = _disjoint_set(walk_order, lambda atom_index: run.ring_membership[atom_index])
        for is_ring, run_atoms in runs:
            if is_ring:
                for atom_index in run_atoms[1:]:
                    groups.union(run_atoms[0], atom_index)

        bonds = [
            (atom_index, neighbour)
            for atom_index in walk_order
            for neighbour in run.neighbours[atom_index]
            if neighbour in atoms_in_system and atom_index < neighbour
        ]

        has_changed = True
        while has_changed:
            has_changed = False
            for atom_index, neighbour in bonds:
                if not (groups.is_flagged(atom_index) or groups.is_flagged(neighbour)):
                    continue
                if self.__is_cuttable(run, atom_index, neighbour):
                    continue
                if groups.union(atom_index, neighbour):
                    has_changed = True

        for atom_index, neighbour in bonds:
            if not (groups.is_flagged(atom_index) or groups.is_flagged(neighbour)):
                groups.union(atom_index, neighbour)

        members = {}
        for atom_index in walk_order:
            members.setdefault(groups.find(atom_index), []).append(atom_index)

        linker_segments = []
        for root, group_atoms in members.items():
            if groups.is_flagged(root):
                run.fragments.append(group_atoms)
            else:
                linker_segments.append(group_atoms)

        LOG.debug(
            "%d ring fragments, %d ring linker segments",
            len(members) - len(linker_segments),
            len(linker_segments),
        )

        for segment in linker_segments:
            branches = self.cut_branches(run.get_connections(segment), sorted(segment))
            self.__cut_chains(run, branches)

    @staticmethod
    def make_corrections(fragments, remainders):
        """Add remainders back to the fragments containing their connection atom.

        Args:
            fragments (list): Finished fragments, lists of atom indices.
            remainders (list): Lists of atom indices whose first atom is the connection atom.

        Returns:
            list: The fragments with all remainders added.

        Raises:
            FragmentationError: If the connection atom of a remainder is not part of any fragment.
        """
        fragments = [list(fragment) for fragment in fragments]
        remainders = [list(remainder) for remainder in remainders]

        while remainders:
            pending_remainders = []
            for remainder in remainders:
                for fragment_index, fragment in enumerate(fragments):
                    if remainder[0] in fragment:
                        fragments[fragment_index] = fragment + remainder[1:]
                        break
                else:
                    pending_remainders.append(remainder)

            if len(pending_remainders) == len(remainders):
                raise FragmentationError(
                    "No fragment contains the connection atom of the remainders {}.".format(
                        pending_remainders
                    )
                )
            remainders = pending_remainders

        return fragments
