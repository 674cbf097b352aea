#!/usr/bin/env python3
"""kubetail: tail logs from multiple Kubernetes pods at once."""

from kubetail.cli import main

if __name__ == "__main__":
    main()
