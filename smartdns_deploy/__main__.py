"""Run the smartdns-deploy command line tool with `python -m smartdns_deploy`."""

from smartdns_deploy.tool.smartdns_deploy import main

if __name__ == "__main__":
    main()
