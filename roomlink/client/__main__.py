from roomlink.client.cli import main

raise SystemExit(main())
