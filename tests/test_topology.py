# tests/test_topology.py
"""Test hinge indexing for chains and trees."""

import pytest

from hingemd.core.errors import ConfigurationError
from hingemd.core.topology import ROOT, HingeKey, Topology


def test_chain_ordering():
    """Root first, then hinges from base to tip."""
    topo = Topology.chain(3)

    assert topo.n_hinges == 4
    assert topo.n_coords == 12
    assert len(topo) == 4
    assert topo.keys == (ROOT, HingeKey(0, 1), HingeKey(0, 2), HingeKey(0, 3))
    assert topo.parent_indices() == [-1, 0, 1, 2]


def test_tree_ordering(tree2x3):
    """Branches are stored one after another, each from base to tip."""
    assert tree2x3.n_hinges == 7
    assert tree2x3.branch_indices(0) == [1, 2, 3]
    assert tree2x3.branch_indices(1) == [4, 5, 6]
    assert tree2x3.parent_indices() == [-1, 0, 1, 2, 0, 4, 5]


def test_parents_precede_children(tree2x3):
    """Every parent index is smaller than its child's."""
    for i, parent in enumerate(tree2x3.parent_indices()):
        assert parent < i


def test_parent_and_children(tree2x3):
    """Navigation in both directions."""
    assert tree2x3.parent(ROOT) is None
    assert tree2x3.parent(HingeKey(1, 1)) == ROOT
    assert tree2x3.parent(HingeKey(1, 3)) == HingeKey(1, 2)

    assert tree2x3.children(ROOT) == [HingeKey(0, 1), HingeKey(1, 1)]
    assert tree2x3.children(HingeKey(0, 2)) == [HingeKey(0, 3)]
    assert tree2x3.is_terminal(HingeKey(0, 3))
    assert not tree2x3.is_terminal(HingeKey(0, 1))


def test_branch_of(tree2x3):
    """Root belongs to no branch."""
    assert tree2x3.branch_of(ROOT) is None
    assert tree2x3.branch_of(HingeKey(1, 3)) == 1


def test_path(tree2x3):
    """Path runs from the root down to the hinge."""
    assert tree2x3.path(ROOT) == [ROOT]
    assert tree2x3.path(HingeKey(1, 2)) == [ROOT, HingeKey(1, 1), HingeKey(1, 2)]


def test_unknown_key_raises(chain3):
    """Keys outside the topology are rejected."""
    with pytest.raises(KeyError):
        chain3.index(HingeKey(1, 1))
    with pytest.raises(KeyError):
        chain3.parent(HingeKey(0, 4))
    with pytest.raises(KeyError):
        chain3.branch_keys(1)


def test_coord_slice(tree2x3):
    """Flat coordinate slices follow the hinge order."""
    assert tree2x3.coord_slice(ROOT) == slice(0, 3)
    assert tree2x3.coord_slice(HingeKey(1, 1)) == slice(12, 15)


def test_minor_rows_and_branch_topology(tree2x3):
    """A branch minor covers the root plus that branch, as a chain."""
    assert tree2x3.minor_rows(1) == [0, 4, 5, 6]
    sub = tree2x3.branch_topology()
    assert sub == Topology.chain(3)
    assert sub.n_hinges == len(tree2x3.minor_rows(0))


def test_equality_and_hash():
    """Topologies compare by shape."""
    assert Topology.tree(2, 3) == Topology(3, 2, "tree")
    assert Topology.tree(2, 3) != Topology.tree(3, 2)
    assert Topology.chain(2) != Topology.tree(1, 2)
    assert len({Topology.chain(2), Topology.chain(2)}) == 1


@pytest.mark.parametrize(
    "args",
    [
        (0, 1, "chain"),
        (3, 0, "tree"),
        (3, 2, "chain"),
        (3, 1, "star"),
    ],
)
def test_invalid_topology(args):
    """Invalid shapes raise ConfigurationError."""
    with pytest.raises(ConfigurationError):
        Topology(*args)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
