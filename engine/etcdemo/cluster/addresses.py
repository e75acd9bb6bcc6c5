"""
Node address conventions for an etcd cluster.
"""

PEER_PORT = 2380
CLIENT_PORT = 2379


def node_url(node: str, port: int) -> str:
    """An HTTP url for connecting to a node on a particular port."""
    return f"http://{node}:{port}"


def peer_url(node: str, port: int = PEER_PORT) -> str:
    """The HTTP url other peers use to talk to a node."""
    return node_url(node, port)


def client_url(node: str, port: int = CLIENT_PORT) -> str:
    """The HTTP url clients use to talk to a node."""
    return node_url(node, port)


def initial_cluster(nodes: list[str], port: int = PEER_PORT) -> str:
    """
    Build the bootstrap cluster string, like "n1=http://n1:2380,n2=http://n2:2380".

    Nodes keep their given order so the string is reproducible.
    """
    return ",".join(f"{node}={peer_url(node, port)}" for node in nodes)
