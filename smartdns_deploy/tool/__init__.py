"""Command line tool for deploying the DoH Smart DNS stack to a cluster."""
