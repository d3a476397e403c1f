from mdmindmap.app import main

raise SystemExit(main())
