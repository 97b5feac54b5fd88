from vrcban.main import main

raise SystemExit(main())
