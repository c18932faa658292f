import io
import math

from PIL import Image, ImageDraw, ImageFont

from rdkit import Chem
from rdkit.Chem import AllChem
from rdkit.Chem.Draw import rdMolDraw2D


PALETTE = [
    (31, 119, 180),  # blue
    (255, 127, 14),  # orange
    (44, 160, 44),  # green
    (214, 39, 40),  # red
    (148, 103, 189),  # purple
    (140, 86, 75),  # brown
    (227, 119, 194),  # pink
    (127, 127, 127),  # grey
    (188, 189, 34),  # olive
    (23, 190, 207),  # cyan
]

HIGHLIGHT_ALPHA = 140
MULTIPLE_BOND_COLOR = (98, 190, 235, 255)


def get_text_size(draw, text, font):
    """Calculates the size of the text when rendered using the specified font.

    Args:
        draw (PIL.ImageDraw.ImageDraw): The drawing context used to measure the text.
        text (str): The text string to be measured.
        font (PIL.ImageFont.ImageFont): The font used for rendering the text.

    Returns:
        tuple: A tuple (width, height) representing the dimensions of the text.
    """
    bbox = draw.textbbox((0, 0), text, font=font)
    return (bbox[2] - bbox[0], bbox[3] - bbox[1])


def group_fragments_by_SMILES(fragments_SMILES, fragments_indices):
    """Collects the atom indices of identical fragments under their SMILES.

    Args:
        fragments_SMILES (list): SMILES of each fragment.
        fragments_indices (list): Atom indices of each fragment, in the same order.

    Returns:
        dict: SMILES mapped to the list of atom index lists of the fragments with this SMILES.
    """
    groups = {}
    for SMILES, indices in zip(fragments_SMILES, fragments_indices):
        groups.setdefault(SMILES, []).append(list(indices))
    return groups


def _get_drawer(mol, img_width_and_height):
    drawer = rdMolDraw2D.MolDraw2DCairo(img_width_and_height, img_width_and_height)
    drawer.drawOptions().addAtomIndices = True
    drawer.DrawMolecule(mol)
    drawer.FinishDrawing()
    return drawer


def _get_bond_length_in_pixel(mol, img_width_and_height):
    bonds = list(mol.GetBonds())
    if not bonds:
        return 80

    drawer = _get_drawer(mol, img_width_and_height)
    p1 = drawer.GetDrawCoords(bonds[0].GetBeginAtomIdx())
    p2 = drawer.GetDrawCoords(bonds[0].GetEndAtomIdx())
    return math.hypot(p1.x - p2.x, p1.y - p2.y)


def _get_image_size(mol, img_width_and_height):
    # grow the canvas until bonds are long enough to see the highlights
    if img_width_and_height is not None:
        return img_width_and_height, _get_bond_length_in_pixel(mol, img_width_and_height)

    img_width_and_height = 600
    bond_length_in_pixel = _get_bond_length_in_pixel(mol, img_width_and_height)
    while bond_length_in_pixel < 70:
        img_width_and_height = int(1.2 * img_width_and_height)
        bond_length_in_pixel = _get_bond_length_in_pixel(mol, img_width_and_height)
    return img_width_and_height, bond_length_in_pixel


def _mix_with_white(color, alpha):
    ratio = alpha / 255
    return tuple(int(min(max(ratio * v + (1 - ratio) * 255, 0), 255)) for v in color)


def draw_fragmentation(mol, fragments_SMILES, fragments_indices, show_multiple_bonds=True,
                       img_width_and_height=None):
    """Draws a 2D depiction of a molecule with its fragments highlighted and a legend.

    Fragments with the same SMILES share one color. Atom and bond highlights are drawn as
    semi-transparent overlays on top of the RDKit depiction, multiple bonds can be marked in
    addition since the fragmentation never cuts them.

    Args:
        mol (rdkit.Chem.Mol): The fragmented molecule. It must consist of a single fragment.
        fragments_SMILES (list): SMILES of each fragment, used as legend entries.
        fragments_indices (list): Atom indices of each fragment.
        show_multiple_bonds (bool, optional): If True, multiple and aromatic bonds are marked.
            Defaults to True.
        img_width_and_height (int, optional): The width and height (in pixels) for the molecule
            depiction. If not provided, a suitable size is determined automatically. Defaults to None.

    Returns:
        PIL.Image.Image: An image of the molecule with highlights and a legend.

    Raises:
        ValueError: If the molecule consists of more than one fragment.
    """
    if len(Chem.GetMolFrags(mol)) != 1:
        raise ValueError('This function can only handle molecules with one fragment.')

    mol = Chem.Mol(mol)
    AllChem.Compute2DCoords(mol)

    start_size = img_width_and_height or 600
    img_width_and_height, bond_length_in_pixel = _get_image_size(mol, img_width_and_height)
    size_multiplier = max(img_width_and_height / start_size, 1)

    drawer = rdMolDraw2D.MolDraw2DCairo(img_width_and_height, img_width_and_height)
    drawer.drawOptions().addAtomIndices = True
    drawer.drawOptions().bondLineWidth = size_multiplier * 3
    drawer.DrawMolecule(mol)
    drawer.FinishDrawing()
    base_img = Image.open(io.BytesIO(drawer.GetDrawingText())).convert("RGBA")

    atom_coords = {}
    for i in range(mol.GetNumAtoms()):
        point = drawer.GetDrawCoords(i)
        atom_coords[i] = (point.x, point.y)

    groups = group_fragments_by_SMILES(fragments_SMILES, fragments_indices)
    colors = {SMILES: PALETTE[i % len(PALETTE)] for i, SMILES in enumerate(groups)}

    circle_radius = int(bond_length_in_pixel / 4)
    line_width = int(bond_length_in_pixel / 5)

    overlay = Image.new("RGBA", base_img.size, (255, 255, 255, 0))
    overlay_draw = ImageDraw.Draw(overlay, 'RGBA')
    for SMILES, fragments in groups.items():
        rgba_color = colors[SMILES] + (HIGHLIGHT_ALPHA,)
        for fragment in fragments:
            fragment = set(fragment)
            for bond in mol.GetBonds():
                a1 = bond.GetBeginAtomIdx()
                a2 = bond.GetEndAtomIdx()
                if a1 in fragment and a2 in fragment:
                    overlay_draw.line([atom_coords[a1], atom_coords[a2]], fill=rgba_color, width=line_width)
            for atom_idx in fragment:
                x, y = atom_coords[atom_idx]
                overlay_draw.ellipse([x - circle_radius, y - circle_radius,
                                      x + circle_radius, y + circle_radius], fill=rgba_color)

    has_multiple_bonds = False
    multiple_bond_line_width = int(max((line_width * size_multiplier) / 5, 4))
    if show_multiple_bonds:
        for bond in mol.GetBonds():
            if bond.GetBondType() != Chem.rdchem.BondType.SINGLE:
                has_multiple_bonds = True
                overlay_draw.line([atom_coords[bond.GetBeginAtomIdx()], atom_coords[bond.GetEndAtomIdx()]],
                                  fill=MULTIPLE_BOND_COLOR, width=multiple_bond_line_width)

    base_img = Image.alpha_composite(base_img, overlay)

    return _add_legend(base_img, groups, colors, size_multiplier,
                       multiple_bond_line_width if has_multiple_bonds else 0)


def _add_legend(base_img, groups, colors, size_multiplier, multiple_bond_line_width):
    border_width = 5
    legend_width = int(base_img.width / 3)

    bordered_img = Image.new("RGBA",
                             (base_img.width + 2 * border_width, base_img.height + 2 * border_width),
                             (240, 240, 240, 255))
    bordered_img.paste(base_img, (border_width, border_width), base_img)

    final_width = bordered_img.width + legend_width
    final_img = Image.new("RGBA", (final_width, bordered_img.height), (255, 255, 255, 255))
    final_img.paste(bordered_img, (0, 0))

    legend_draw = ImageDraw.Draw(final_img)
    legend_draw.rectangle((bordered_img.width, 0, final_width, bordered_img.height),
                          fill=(245, 245, 245, 255))

    margin = 10 * size_multiplier
    try:
        font = ImageFont.truetype("arial.ttf", int(16 * size_multiplier))
    except IOError:
        font = ImageFont.load_default()

    title_text = "Fragments"
    title_width, title_height = get_text_size(legend_draw, title_text, font=font)
    legend_draw.text((int(bordered_img.width + (legend_width - title_width) / 2), margin),
                     title_text, fill=(0, 0, 0, 255), font=font)

    current_y = margin + title_height + margin
    box_size = 20 * size_multiplier
    spacing = 10 * size_multiplier
    rect_x0 = bordered_img.width + margin

    for SMILES, fragments in groups.items():
        legend_draw.rounded_rectangle([rect_x0, current_y, rect_x0 + box_size, current_y + box_size],
                                      radius=4, fill=_mix_with_white(colors[SMILES], HIGHLIGHT_ALPHA))
        text = f"{SMILES} ({len(fragments)})"
        _, text_height = get_text_size(legend_draw, text, font=font)
        legend_draw.text((rect_x0 + box_size + spacing, int(current_y + (box_size - text_height) / 2)),
                         text, fill=(0, 0, 0, 255), font=font)
        current_y += box_size + spacing

    if multiple_bond_line_width:
        text = "multiple bond"
        _, text_height = get_text_size(legend_draw, text, font=font)
        text_y = int(current_y + (box_size - text_height) / 2)
        line_y = int(current_y + box_size / 2)
        legend_draw.line([(rect_x0, line_y), (rect_x0 + box_size, line_y)],
                         fill=MULTIPLE_BOND_COLOR, width=multiple_bond_line_width)
        legend_draw.text((rect_x0 + box_size + spacing, text_y), text, fill=(0, 0, 0, 255), font=font)

    return final_img


def get_table_with_atom_properties_relevant_to_fragmentation(mol):
    """Generates a table of the atom properties that decide where a molecule can be cut.

    For each atom the table lists its symbol, its degree, whether it is a branching
    (tertiary or quaternary) atom, whether it is part of a ring, and the bond orders to its
    neighbours. Bonds that are not single are never cut, and branching atoms keep their
    neighbours when branching atoms are preserved.

    Args:
        mol (rdkit.Chem.Mol): The molecule for which the atom properties are to be tabulated.

    Returns:
        tuple: A tuple containing three elements:
            - headers (list): Header labels.
            - data (list of lists): A list of rows with atom properties.
            - formatted_rows (list): A list of strings, each representing a formatted row.
    """
    headers = ["idx", "Sym", "Degree", "Branching", "Ring", "Neighbours (bond order)"]

    data = []
    for atom in mol.GetAtoms():
        neighbours = []
        for bond in atom.GetBonds():
            order = bond.GetBondTypeAsDouble()
            neighbours.append(f"{bond.GetOtherAtomIdx(atom.GetIdx())}({order:g})")
        data.append([
            f"{atom.GetIdx()}",
            atom.GetSymbol(),
            f"{atom.GetDegree()}",
            "✔" if atom.GetDegree() >= 3 else "✘",
            "✔" if atom.IsInRing() else "✘",
            " ".join(neighbours),
        ])

    col_widths = [max([len(headers[i])] + [len(row[i]) for row in data]) for i in range(len(headers))]

    fmt = " | ".join(f"{{:<{w}}}" for w in col_widths)
    sep = "-+-".join("-" * w for w in col_widths)

    formatted_rows = [fmt.format(*headers), sep]
    for row in data:
        formatted_rows.append(fmt.format(*row))

    return headers, data, formatted_rows
