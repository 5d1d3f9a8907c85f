"""
Read the stochastically mapped trees written by the sampler.

Each mapping is a newick-like string in which every node
is annotated with the history of the branch above it.
The annotation of a non-root node looks like
[taxon_]S:d:S:d ... :S:d
where the first state S is the state at the node itself
and each following (d, S) pair walks the branch towards the parent;
each duration d belongs to the state written just before it.
The annotation of the root is its state alone.
For example
((a_G:0.2:C:0.3,b_C:0.5)C:0.1,c_A:0.6)C;
.
The parsed tree is a networkx digraph directed away from the root.
The non-root nodes are numbered 0, 1, ... in postorder,
visiting children with the outgroup clade first
and otherwise in order of their smallest taxon name,
so that the numbering depends on the topology and not on the
order in which the sampler happened to write the subtrees.
The root gets the next number.
Branch j is the branch above node j.
"""

import re
import logging

import networkx as nx

from cpgmaputil import FormatError
from timeline import SitePath


logger = logging.getLogger(__name__)

_token_pattern = re.compile(r'[(),;]|[^(),;]+')


def read_outgroup(fin):
    """
    @param fin: open file with whitespace separated taxon names
    @return: list of taxon names
    """
    return fin.read().split()


def _parse_annotation(label):
    """
    @param label: node annotation text
    @return: taxon name or None, node state, SitePath or None
    """
    fields = [s.strip() for s in label.split(':')]
    head = fields[0]
    taxon, sep, state = head.rpartition('_')
    if not sep:
        taxon = None
    states = [state] + fields[2::2]
    if any(len(s) != 1 for s in states):
        raise FormatError('expected single character states: %s' % label)
    try:
        dwells = [float(d) for d in fields[1::2]]
    except ValueError as e:
        raise FormatError('non-numeric duration in %s' % label) from e
    if not dwells:
        return taxon, state, None
    if len(dwells) != len(states):
        raise FormatError('expected one duration per state: %s' % label)
    if any(d < 0 for d in dwells):
        raise FormatError('negative duration in %s' % label)
    # put the path in order from the parent towards the node
    path = SitePath(states[::-1], dwells[::-1])
    return taxon, state, path


def _ordered_children(G, v, leaf_sets, outgroup):
    def key(c):
        leaves = leaf_sets[c]
        return (leaves != outgroup, min(leaves))
    return sorted(G.successors(v), key=key)


def _leaf_sets(G, root):
    leaf_sets = {}
    for v in nx.dfs_postorder_nodes(G, root):
        succs = list(G.successors(v))
        if succs:
            leaf_sets[v] = frozenset().union(*(leaf_sets[c] for c in succs))
        else:
            leaf_sets[v] = frozenset([G.nodes[v]['taxon'] or ''])
    return leaf_sets


def parse_mapping_tree(s, outgroup=None):
    """
    Parse one stochastic mapping.
    @param s: the mapping string
    @param outgroup: a collection of taxon names or None
    @return: networkx digraph with node states and branch paths
    """

    # build the tree with nodes in the order of appearance
    G = nx.DiGraph()
    stack = []
    closed = None
    root = None
    expect_label = False
    for token in _token_pattern.findall(s.strip()):
        if token == '(':
            v = G.number_of_nodes()
            G.add_node(v, taxon=None, state=None)
            if stack:
                G.add_edge(stack[-1], v)
            elif root is not None:
                raise FormatError('expected a single root')
            else:
                root = v
            stack.append(v)
            expect_label = False
        elif token == ')':
            if not stack:
                raise FormatError('unbalanced parentheses')
            closed = stack.pop()
            expect_label = True
        elif token in (',', ';'):
            expect_label = False
        else:
            label = token.strip()
            if not label:
                continue
            if expect_label:
                v = closed
            else:
                if not stack:
                    raise FormatError('a leaf outside of any clade')
                v = G.number_of_nodes()
                G.add_node(v)
                G.add_edge(stack[-1], v)
            taxon, state, path = _parse_annotation(label)
            G.nodes[v]['taxon'] = taxon
            G.nodes[v]['state'] = state
            if v != root:
                if path is None:
                    raise FormatError('missing branch history: %s' % label)
                G.nodes[v]['path'] = path
            expect_label = False
    if stack or root is None:
        raise FormatError('unbalanced parentheses')
    for v in G:
        if G.nodes[v].get('state') is None:
            raise FormatError('a node has no state annotation')

    # number the non-root nodes in the canonical postorder
    outgroup = frozenset(outgroup or ())
    leaf_sets = _leaf_sets(G, root)
    order = []
    stack = [(root, False)]
    while stack:
        v, visited = stack.pop()
        if visited:
            order.append(v)
        else:
            stack.append((v, True))
            children = _ordered_children(G, v, leaf_sets, outgroup)
            for c in reversed(children):
                stack.append((c, False))
    mapping = dict((v, i) for i, v in enumerate(order))
    G = nx.relabel_nodes(G, mapping)
    G.graph['root'] = mapping[root]

    # put the branch path and its length on the edge above each node
    for a, b in G.edges():
        path = G.nodes[b].pop('path')
        G[a][b]['path'] = path
        G[a][b]['blen'] = sum(path.dwells)

    return G


def get_nbranches(G):
    return G.number_of_nodes() - 1


def get_root_state(G):
    return G.nodes[G.graph['root']]['state']


def get_site_path(G, branch):
    """
    @param G: parsed mapping tree
    @param branch: branch index
    @return: the SitePath of the branch
    """
    parent = next(iter(G.predecessors(branch)))
    return G[parent][branch]['path']


def check_outgroup(G, outgroup):
    """
    Check that the outgroup is a clade below the root.
    @param G: parsed mapping tree
    @param outgroup: a collection of taxon names
    @return: True if the outgroup is one of the root clades
    """
    outgroup = frozenset(outgroup)
    if not outgroup:
        logger.warning('no outgroup taxa were given')
        return False
    root = G.graph['root']
    leaf_sets = _leaf_sets(G, root)
    if any(leaf_sets[c] == outgroup for c in G.successors(root)):
        return True
    logger.warning(
            'the outgroup %s is not a clade below the root',
            ' '.join(sorted(outgroup)))
    return False
