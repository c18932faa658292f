import argparse
import logging
import os
import sys

from tqdm import tqdm

from alkyl_fragmenter import alkyl_fragmenter, FragmentationError
from alkyl_fragmenter_utils import draw_fragmentation, get_table_with_atom_properties_relevant_to_fragmentation

LOG = logging.getLogger("execute_alkyl_fragmentation")


def info_to_CSV(identifier, SMILES, fragments_SMILES):
    return identifier + "," + SMILES + "," + "|".join(fragments_SMILES)


def CSV_to_info(CSV_line, has_fragmentation=False):
    """Read one input line: either a bare SMILES or identifier,SMILES[,fragments]."""
    CSV_line = CSV_line.strip()
    array = CSV_line.split(',')

    if len(array) == 1:
        return array[0], array[0], []

    fragments_SMILES = []
    if has_fragmentation and len(array) > 2 and array[2]:
        fragments_SMILES = array[2].split('|')

    return array[0], array[1], fragments_SMILES


def get_argument_parser():
    parser = argparse.ArgumentParser(
        description="Cut the carbon skeleton of hydrocarbons into fragments of a defined size."
    )
    parser.add_argument("input", help="file with one SMILES or identifier,SMILES per line")
    parser.add_argument("output", help="CSV file with identifier,SMILES,fragment SMILES joined by |")
    parser.add_argument("--min-cut", type=int, default=0, help="minimum fragment size, 0 for none")
    parser.add_argument("--max-cut", type=int, default=0, help="maximum fragment size, 0 for none")
    parser.add_argument("--preserve-branching-atoms", action="store_true",
                        help="keep tertiary and quaternary atoms together with all their neighbours")
    parser.add_argument("--draw", metavar="DIRECTORY",
                        help="save a depiction of every fragmentation into this directory")
    parser.add_argument("--show-atoms", action="store_true",
                        help="log the atom properties relevant to the fragmentation")
    parser.add_argument("--verbose", action="store_true", help="log every fragmentation step")
    return parser


def main(argv=None):
    args = get_argument_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        frg = alkyl_fragmenter(args.min_cut, args.max_cut, args.preserve_branching_atoms)
    except ValueError as e:
        LOG.error("%s", e)
        return 2

    if args.draw:
        os.makedirs(args.draw, exist_ok=True)

    with open(args.input) as f:
        structures = [CSV_to_info(line) for line in f if line.strip()]

    n_fragmented = 0
    with open(args.output, "w") as f_out:
        for n, (identifier, SMILES, _) in enumerate(tqdm(structures, total=len(structures)), 1):
            fragments_SMILES = []
            try:
                mol = frg.get_molecule(SMILES)
                if args.show_atoms:
                    for row in get_table_with_atom_properties_relevant_to_fragmentation(mol)[2]:
                        LOG.info("%s", row)
                fragments_SMILES, fragments_indices = frg.fragment_molecule(mol)
                n_fragmented += 1
            except (ValueError, FragmentationError) as e:
                LOG.warning("%s (%s) could not be fragmented: %s", identifier, SMILES, e)
            else:
                if args.draw:
                    img = draw_fragmentation(mol, fragments_SMILES, fragments_indices)
                    img.save(os.path.join(args.draw, f"structure_{n}.png"))

            f_out.write(info_to_CSV(identifier, SMILES, fragments_SMILES) + "\n")

    LOG.info("N_structures: %d", len(structures))
    LOG.info("N_fragmented: %d", n_fragmented)
    return 0


if __name__ == "__main__":
    sys.exit(main())
